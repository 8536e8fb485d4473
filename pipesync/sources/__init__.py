"""Adapters for the external document holding pipeline state."""

from pipesync.sources.base import StateSource
from pipesync.sources.memory import InMemoryStateSource
from pipesync.sources.yaml_document import YamlDocumentSource

__all__ = ["StateSource", "InMemoryStateSource", "YamlDocumentSource"]
