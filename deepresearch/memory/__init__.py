"""
Memory System
=============

State that a research run keeps:

1. SHORT-TERM: the run's ordered messages with token accounting
2. WORKING: the virtual file workspace shared with sub-agents
3. CHECKPOINTS: append-only snapshots for resuming runs

Usage:
    from deepresearch.memory import MessageStore, VirtualFilesystem, MemoryCheckpointStore
"""

from deepresearch.memory.short_term import Message, MessageStore, format_transcript
from deepresearch.memory.working import VirtualFile, VirtualFilesystem, normalize_path
from deepresearch.memory.checkpoint import (
    CheckpointRecord,
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
)

__all__ = [
    "Message",
    "MessageStore",
    "format_transcript",
    "VirtualFile",
    "VirtualFilesystem",
    "normalize_path",
    "CheckpointRecord",
    "CheckpointStore",
    "FileCheckpointStore",
    "MemoryCheckpointStore",
]
