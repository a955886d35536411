"""Script adapters: how a user script is prepared for a target site.

An adapter bundles three things for one script/site pairing:

* ``script_string``: the user script after it has been rewritten to
  run in this browser, or ``None`` when no script was supplied at all;
* ``execution_filters``: URL substrings that gate injection. A page
  qualifies when its URL contains any of them, or always when there
  are none;
* ``additional_css``: a style sheet inserted into every finished page,
  for styling the elements the script creates.

A script that is present but empty counts as "no script". Use
:meth:`ScriptAdapter.has_script` for that check rather than comparing
``script_string`` with ``None``.

Rewrites are literal substring replacements, not parsing. Every
occurrence is replaced, including inside string literals and comments,
and running a rewrite over already rewritten text matches again (a
commented ``//GM_addStyle`` becomes ``////GM_addStyle``).
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Type

logger = logging.getLogger(__name__)

Replacement = Tuple[str, str]


def apply_replacements(script: str, replacements: Iterable[Replacement]) -> str:
    """Apply each ``(old, new)`` literal replacement to ``script`` in order."""
    for old, new in replacements:
        script = script.replace(old, new)
    return script


class ScriptAdapter(abc.ABC):
    """Interface every adapter implements."""

    #: Registry name, used by configuration to select the adapter.
    name: str = ""

    @property
    @abc.abstractmethod
    def script_string(self) -> Optional[str]:
        """Transformed script ready for injection, or ``None``."""

    @property
    @abc.abstractmethod
    def execution_filters(self) -> Tuple[str, ...]:
        """URL substrings that gate injection; empty means every page."""

    @property
    @abc.abstractmethod
    def additional_css(self) -> str:
        """CSS appended to the page head after every navigation."""

    def has_script(self) -> bool:
        return bool(self.script_string)


class UserScriptAdapter(ScriptAdapter):
    """Adapter configured entirely from data.

    ``script`` of ``None`` means no script was loaded. The replacements
    are applied once, here, and the result never changes afterwards.
    """

    name = "userscript"

    def __init__(
        self,
        script: Optional[str],
        filters: Sequence[str] = (),
        css: str = "",
        replacements: Sequence[Replacement] = (),
    ) -> None:
        self._filters = tuple(filters)
        self._css = css
        self._replacements = tuple((old, new) for old, new in replacements)
        self._script = None if script is None else self.convert(script)

    def convert(self, script: str) -> str:
        return apply_replacements(script, self._replacements)

    @property
    def script_string(self) -> Optional[str]:
        return self._script

    @property
    def execution_filters(self) -> Tuple[str, ...]:
        return self._filters

    @property
    def additional_css(self) -> str:
        return self._css


class WaniKaniOverrideAdapter(UserScriptAdapter):
    """Adapter for the WaniKani "Override" userscript on review pages.

    The script was written for Greasemonkey. It borrows jQuery from
    ``unsafeWindow`` and styles its button with ``GM_addStyle``; neither
    exists here, so both lines are commented out and the button styling
    is supplied as :attr:`additional_css` instead.
    """

    name = "wanikani-override"

    FILTERS = ("wanikani.com/review/session",)
    REPLACEMENTS = (
        ("$ = unsafeWindow.$;", "//$ = unsafeWindow.$;"),
        ("GM_addStyle", "//GM_addStyle"),
    )
    BUTTON_CSS = (
        "#WKO_button {background-color: #CC0000; color: #FFFFFF; cursor: pointer; "
        "display: inline-block; font-size: 0.8125em; padding: 10px; vertical-align: bottom;}"
    )
    ANSWER_FORM_CSS = (
        '#answer-form fieldset.WKO_ignored input[type="text"]:-moz-placeholder, '
        '#answer-form fieldset.WKO_ignored input[type="text"]:-moz-placeholder '
        '{color: #FFFFFF; font-family: "Source Sans Pro",sans-serif; font-weight: 300; '
        "text-shadow: none; transition: color 0.15s linear 0s; } "
        "#answer-form fieldset.WKO_ignored button, "
        '#answer-form fieldset.WKO_ignored input[type="text"], '
        '#answer-form fieldset.WKO_ignored input[type="text"]:disabled '
        "{ background-color: #FFCC00 !important; }"
    )

    def __init__(self, script: str) -> None:
        super().__init__(script, self.FILTERS, self.BUTTON_CSS + self.ANSWER_FORM_CSS, self.REPLACEMENTS)


ADAPTERS: Dict[str, Type[UserScriptAdapter]] = {
    WaniKaniOverrideAdapter.name: WaniKaniOverrideAdapter,
    UserScriptAdapter.name: UserScriptAdapter,
}


def create_adapter(name: str, script: Optional[str], settings: Optional[Dict[str, Any]] = None) -> ScriptAdapter:
    """Build the adapter registered under ``name``.

    The WaniKani adapter treats a missing script as an empty one. The
    generic ``userscript`` adapter takes its filters, CSS and
    replacements from ``settings``.

    :raises KeyError: If no adapter is registered under ``name``.
    """
    if name not in ADAPTERS:
        raise KeyError(f"Unknown adapter {name!r}; choose from {', '.join(sorted(ADAPTERS))}")
    if name == WaniKaniOverrideAdapter.name:
        return WaniKaniOverrideAdapter(script or "")
    settings = settings or {}
    replacements = [tuple(pair) for pair in settings.get("replacements") or []]
    logger.debug("userscript adapter: %d filters, %d replacements",
                 len(settings.get("filters") or []), len(replacements))
    return UserScriptAdapter(
        script,
        filters=settings.get("filters") or (),
        css=settings.get("css") or "",
        replacements=replacements,
    )
