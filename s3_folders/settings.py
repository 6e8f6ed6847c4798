from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import asdict, dataclass, field
import json
from pathlib import Path

DEFAULT_BACKEND_URL = "http://localhost:3000/api"


def _default_download_dir() -> str:
    return str(Path.home() / "Downloads")


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    backend_url: str = DEFAULT_BACKEND_URL
    request_timeout: float = 30.0
    transfer_timeout: float = 300.0
    download_dir: str = field(default_factory=_default_download_dir)
    remember_last_folder: bool = False
    last_folder: str = ""


def _positive_float(value: object, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _text(value: object, default: str) -> str:
    return value if isinstance(value, str) else default


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3folders_settings.json"
        self._path = Path(storage_path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppSettings:
        defaults = AppSettings()
        if not self._path.exists():
            return defaults
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return defaults
        if not isinstance(data, dict):
            return defaults
        backend_url = _text(data.get("backend_url"), defaults.backend_url).strip()
        remember = data.get("remember_last_folder", defaults.remember_last_folder)
        return AppSettings(
            backend_url=backend_url or defaults.backend_url,
            request_timeout=_positive_float(data.get("request_timeout"), defaults.request_timeout),
            transfer_timeout=_positive_float(data.get("transfer_timeout"), defaults.transfer_timeout),
            download_dir=_text(data.get("download_dir"), defaults.download_dir) or defaults.download_dir,
            remember_last_folder=remember if isinstance(remember, bool) else defaults.remember_last_folder,
            last_folder=_text(data.get("last_folder"), ""),
        )

    def save(self, settings: AppSettings) -> None:
        payload = asdict(settings)
        payload["request_timeout"] = _positive_float(settings.request_timeout, AppSettings.request_timeout)
        payload["transfer_timeout"] = _positive_float(settings.transfer_timeout, AppSettings.transfer_timeout)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            return
