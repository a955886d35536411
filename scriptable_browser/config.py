"""Settings for the browser and the script loader.

Settings come from :data:`DEFAULTS`, overridden by an optional YAML
file and finally by command-line flags. The store location may also be
set with the ``SCRIPTABLE_BROWSER_STORE`` environment variable.

Example ``config.yaml`` for a site without a dedicated adapter::

    start_url: https://example.org/
    adapter: userscript
    filters: ["example.org/app"]
    css: "#my_button {color: red;}"
    replacements:
      - ["GM_addStyle", "//GM_addStyle"]
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = "~/.scriptable_browser/config.yaml"
STORE_ENV_VAR = "SCRIPTABLE_BROWSER_STORE"

DEFAULTS: Dict[str, Any] = {
    "start_url": "http://www.wanikani.com/dashboard",
    "adapter": "wanikani-override",
    "store_path": "~/.scriptable_browser/store.json",
    "script_url": (
        "https://gist.githubusercontent.com/sheodox/5daa04083fe73f06d691/raw/"
        "a32f25d7493567b4ff6bb52147816122a857ffb6/wkoverride.user.js"
    ),
    # Only used by the generic "userscript" adapter
    "filters": [],
    "css": "",
    "replacements": [],
}


class ConfigError(ValueError):
    """Raised when the settings file is not a YAML mapping."""


def load(path: Optional[str] = None) -> Dict[str, Any]:
    """Return settings merged from DEFAULTS, the YAML file and the environment."""
    cfg: Dict[str, Any] = dict(DEFAULTS)
    config_path = Path(os.path.expanduser(path or DEFAULT_CONFIG_PATH))
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping, not {type(data).__name__}")
        cfg.update(data)
    if os.environ.get(STORE_ENV_VAR):
        cfg["store_path"] = os.environ[STORE_ENV_VAR]
    cfg["store_path"] = os.path.expanduser(os.path.expandvars(str(cfg["store_path"])))
    return cfg
