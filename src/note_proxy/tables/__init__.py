# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Table managers for the note proxy database."""

from .note_queue import NoteQueueTable
from .vaults import VaultsTable

__all__ = [
    "NoteQueueTable",
    "VaultsTable",
]
