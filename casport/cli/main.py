"""
casport CLI - Command-line interface for content-addressed storage migration.

Content:
    casport put photo.jpg --store sqlite://./local.db
    casport get sha256:2cf24d... --store sqlite://./local.db -o photo.jpg
    casport ls --store file://./blobs

Migration:
    casport estimate --source sqlite://./local.db
    casport migrate --source sqlite://./local.db --target file://./blobs --batch-size 5

This creates the 'casport' command via entry point in pyproject.toml.
"""


def main():
    """Main entry point for the casport CLI."""
    from casport.cli.app import cli

    cli()


if __name__ == "__main__":
    main()
