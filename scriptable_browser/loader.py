"""Download or load a user script for the browser.

The browser reads its user script from the shared
:class:`~scriptable_browser.storage.KeyValueStore`. This module puts it
there, either by downloading it (the default URL points at the WaniKani
"Override" userscript) or from a local ``.js`` file::

    scriptable-browser-script download
    scriptable-browser-script download --url https://example.org/my.user.js
    scriptable-browser-script load my.user.js
    scriptable-browser-script clear

A custom script may need light editing to run outside Greasemonkey;
configure an adapter with ``replacements`` for that.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from . import config
from .networking import InvalidURLError, fetch_text
from .storage import USER_SCRIPT_KEY, KeyValueStore

logger = logging.getLogger(__name__)

FALLBACK_SCRIPT = "alert('script could not be loaded')"


def download_script(
    store: KeyValueStore,
    url: str = config.DEFAULTS["script_url"],
    fetch: Callable[[str], str] = fetch_text,
) -> str:
    """Download the script at ``url`` into ``store`` and return a status line.

    A failed download still writes a script: one that alerts the user
    that loading failed, so the browser reports the problem in the page.
    """
    try:
        script = fetch(url)
    except (OSError, InvalidURLError, UnicodeDecodeError) as ex:
        logger.warning("could not download %s: %s", url, ex)
        store.set(USER_SCRIPT_KEY, FALLBACK_SCRIPT)
        return "nothing downloaded"
    store.set(USER_SCRIPT_KEY, script)
    logger.info("stored %d characters from %s", len(script), url)
    return "script loaded"


def load_custom_script(store: KeyValueStore, path: str) -> str:
    """Store the contents of the local file ``path`` as the user script.

    :raises OSError: If the file cannot be read.
    """
    script = Path(path).read_text(encoding="utf-8")
    store.set(USER_SCRIPT_KEY, script)
    return "script loaded"


def clear_script(store: KeyValueStore) -> str:
    if store.delete(USER_SCRIPT_KEY):
        return "script cleared"
    return "no script to clear"


def parse(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="scriptable-browser-script", description="Manage the browser's user script")
    ap.add_argument("--config", default=None, help="Path to YAML config")
    ap.add_argument("--store", default=None, help="Path to the script store (overrides config)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")
    sub = ap.add_subparsers(dest="command", required=True)
    dl = sub.add_parser("download", help="Download a user script")
    dl.add_argument("--url", default=None, help="Script URL (default from config)")
    ld = sub.add_parser("load", help="Load a user script from a local file")
    ld.add_argument("path", help="Path to a .js file")
    sub.add_parser("clear", help="Forget the stored user script")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    settings = config.load(args.config)
    store = KeyValueStore(args.store or settings["store_path"])
    if args.command == "download":
        print(download_script(store, args.url or settings["script_url"]))
    elif args.command == "load":
        try:
            print(load_custom_script(store, args.path))
        except OSError as ex:
            print(f"could not read {args.path}: {ex}", file=sys.stderr)
            return 1
    else:
        print(clear_script(store))
    return 0


if __name__ == "__main__":
    sys.exit(main())
