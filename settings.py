# settings.py
from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = [
    "get_data_dir",
    "get_settings_path",
    "get_storage_path",
    "load_settings",
    "save_settings",
    "reset_cache",
    "get",
    "set_",
    "get_export_dir",
]

# ---- location & defaults ----------------------------------------------------

APP_NAME = "bulkinvoice"
FILE_NAME = ".bulkinvoice_settings.json"
HOME_ENV = "BULKINVOICE_HOME"

DEFAULTS: Dict[str, Any] = {
    "version": 1,
    "general": {
        "default_export_dir": str(Path.home() / "Documents" / "BulkInvoice" / "exports"),
    },
    "storage": {
        "file_name": "local_storage.json",
        "invoices_key": "bulkinvoice.invoices",
    },
    "pdf": {
        "page_format": "A4",
        "batch_filename": "invoices.pdf",
        "snapshot_filename_template": "invoice_{position}.pdf",
        "thousand_separators": True,
    },
    "ui": {
        "currency_symbol": "₹",
        "confirm_destructive_import": True,  # import replaces every invoice
    },
    "logging": {
        "level": "INFO",
        "file_enabled": True,
        "file_name": "bulkinvoice.log",
    },
}

# ---- path helpers -----------------------------------------------------------

def get_data_dir() -> Path:
    """
    Directory holding settings, the local storage file and logs.
    $BULKINVOICE_HOME wins when set, otherwise:
    Windows: C:\\Users\\<user>\\AppData\\Roaming\\bulkinvoice
    macOS:   ~/Library/Application Support/bulkinvoice
    Linux:   ~/.config/bulkinvoice
    """
    override = os.environ.get(HOME_ENV)
    if override:
        base = Path(override)
    elif os.name == "nt":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming")) / APP_NAME
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support" / APP_NAME
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / APP_NAME

    base.mkdir(parents=True, exist_ok=True)
    return base


def get_settings_path() -> Path:
    return get_data_dir() / FILE_NAME


def get_storage_path() -> Path:
    """Path of the durable key-value file the invoice store writes to."""
    return get_data_dir() / str(get("storage.file_name", DEFAULTS["storage"]["file_name"]))


# ---- core load/save (with atomic write & simple migration hook) --------------

_cache: Optional[Dict[str, Any]] = None  # in-process cache


def _deep_merge(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    """merge missing keys from src into dst (dst wins when keys already exist)."""
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _deep_merge(dst[k], v)
        else:
            dst.setdefault(k, v)
    return dst


def _migrate(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring older settings files up to DEFAULTS["version"].
    Only version 1 exists so far; unknown versions get defaults merged in.
    """
    data = _deep_merge(data, json.loads(json.dumps(DEFAULTS)))
    data["version"] = DEFAULTS["version"]
    return data


def load_settings() -> Dict[str, Any]:
    """Load settings from disk (cached), merging defaults and applying migrations."""
    global _cache
    if _cache is not None:
        return _cache

    path = get_settings_path()
    if not path.exists():
        _cache = json.loads(json.dumps(DEFAULTS))  # deep copy
        save_settings(_cache)
        return _cache

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        data = _migrate(data if isinstance(data, dict) else {})
    except (OSError, ValueError):
        # bad file: run on defaults, leave the file alone so it can be inspected
        data = json.loads(json.dumps(DEFAULTS))

    _cache = data
    return _cache


def save_settings(data: Dict[str, Any]) -> None:
    """Persist settings to disk atomically and update cache."""
    global _cache
    path = get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = _migrate(dict(data))

    fd, tmp = tempfile.mkstemp(prefix="bi_settings_", suffix=".json", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)

    _cache = data


def reset_cache() -> None:
    """Forget the cached settings so the next read goes to disk."""
    global _cache
    _cache = None


# ---- convenience getters/setters --------------------------------------------

def get(path: str, default: Any = None) -> Any:
    """
    Read a settings value by 'dot.path', e.g.:
      get("pdf.batch_filename", "invoices.pdf")
    """
    data = load_settings()
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def set_(path: str, value: Any) -> None:
    """
    Write a settings value by 'dot.path', creating intermediate dicts if needed.
    Example:
      set_("ui.confirm_destructive_import", False)
    """
    data = load_settings()
    node = data
    parts = path.split(".")
    for key in parts[:-1]:
        node = node.setdefault(key, {})
        if not isinstance(node, dict):
            raise TypeError(f"Cannot set {path}: {key} is not a dict in settings.")
    node[parts[-1]] = value
    save_settings(data)


def get_export_dir(create: bool = True) -> Path:
    """
    Returns the export directory Path (ensures exists if create=True).
    """
    p = Path(str(get("general.default_export_dir", DEFAULTS["general"]["default_export_dir"])))
    if create:
        p.mkdir(parents=True, exist_ok=True)
    return p
