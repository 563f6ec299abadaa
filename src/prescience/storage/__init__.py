"""Storage layer: atomic single-writer JSON documents."""

from prescience.storage.files import count_entries, load_json, save_json

__all__ = ["count_entries", "load_json", "save_json"]
