"""Management script for moderation and configuration tasks"""

from dotenv import load_dotenv

load_dotenv()

from flask.cli import FlaskGroup  # noqa: E402

from siteapi import create_app  # noqa: E402

cli = FlaskGroup(create_app=create_app)


if __name__ == "__main__":
    cli()
