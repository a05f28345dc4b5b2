from __future__ import annotations

from bucketfs_core.domain.forms import FormElement, LoginForm
from bucketfs_core.domain.models import DIRECTORY, FILE, FileEntry, Metadata

__all__ = ["DIRECTORY", "FILE", "FileEntry", "FormElement", "LoginForm", "Metadata"]
