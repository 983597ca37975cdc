"""Configuration file management."""
import json
from pathlib import Path
from typing import Optional


class ConfigManager:
    """Read-only application configuration.

    Values come from config.json next to this module, merged over the
    defaults. Nothing is written back.
    """

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else Path(__file__).parent / "config.json"
        self.config = self._load_config()

    def _load_config(self) -> dict:
        """Load configuration from file."""
        config = self._default_config()
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    loaded = json.load(f)
            except Exception as e:
                print(f"Error reading config: {e}")
                return config
            if isinstance(loaded, dict):
                config.update(loaded)
        return config

    def _default_config(self) -> dict:
        """Return default configuration."""
        return {
            "output_device": None,
            "refresh_ms": 50,
            "snapshot_length": 512,
        }

    # ── MIDI output ──────────────────────────────────────────────

    def get_output_device(self) -> Optional[str]:
        """Get the configured MIDI output device."""
        return self.config.get("output_device")

    # ── Rendering ────────────────────────────────────────────────

    def get_refresh_ms(self) -> int:
        """Renderer refresh interval in milliseconds, clamped to [10, 1000]."""
        return int(max(10, min(1000, self._get_number("refresh_ms"))))

    def get_snapshot_length(self) -> int:
        """Samples per renderer snapshot, clamped to [16, 2048]."""
        return int(max(16, min(2048, self._get_number("snapshot_length"))))

    def _get_number(self, key: str) -> float:
        """Numeric setting, or its default when the file holds something else."""
        value = self.config.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
            return self._default_config()[key]
        return value
