"""
Token-scoped key/value stores standing in for the browser's storage.

``JsonFileStore`` survives a reload (persistent, like localStorage);
``MemoryStore`` lives only as long as the current page load.
"""
import json
import os


def scoped_key(token, name):
    return f"exam_{token}_{name}"


class MemoryStore:
    def __init__(self):
        self._data = {}

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value

    def remove(self, key):
        self._data.pop(key, None)


class JsonFileStore(MemoryStore):
    """Persists every write to a JSON file."""

    def __init__(self, path):
        super().__init__()
        self.path = path
        if os.path.exists(path):
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    self._data = data
            except (OSError, json.JSONDecodeError):
                self._data = {}

    def set(self, key, value):
        super().set(key, value)
        self._flush()

    def remove(self, key):
        super().remove(key)
        self._flush()

    def _flush(self):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f)
        os.replace(tmp_path, self.path)
