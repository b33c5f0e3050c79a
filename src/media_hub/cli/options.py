"""Options shared by several commands."""

import typer

from ..common.exceptions import ValidationError
from ..store.models import Owner

OwnerOption = typer.Option(
    ...,
    "--owner",
    "-o",
    envvar="MEDIA_HUB_OWNER",
    help="Email of the owner whose folder is used",
)


def resolve_owner(email: str) -> Owner:
    """Build the owner for a CLI invocation.

    Raises:
        ValidationError: If the value is not an email address
    """
    email = email.strip()
    if "@" not in email:
        raise ValidationError("owner", email, f"Not an email address: {email}")
    return Owner(id=email, email=email)


def drive_folder_url(folder_id: str) -> str:
    return f"https://drive.google.com/drive/folders/{folder_id}"
