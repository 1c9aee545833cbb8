__all__ = [
    "Base",
    "PublicationRow",
]

from db.models.base import Base
from db.models.publications import PublicationRow
