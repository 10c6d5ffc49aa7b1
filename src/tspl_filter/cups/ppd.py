"""
PPD device description and effective job configuration.

RU: Чтение PPD-файла принтера и построение итоговой конфигурации задания.
EN: Reads the printer's PPD file and builds the effective per-job
configuration from PPD defaults plus job option overrides.

Only the part of the PPD grammar the filter relies on is understood:

    *PPD-Adobe: "4.3"
    *cupsModelNumber: 37155
    *OpenUI *Darkness/Darkness: PickOne
    *DefaultDarkness: Default
    *Darkness Default/Printer Default: ""
    *Darkness 12/12: ""
    *CloseUI: *Darkness

Keywords and choices are matched case-insensitively, the way CUPS does it.
Parse failures carry the line number where they happened.

Usage:
    >>> ppd = PpdFile.open_file(os.environ["PPD"])
    >>> config = resolve(ppd, parse_options("Darkness=12"))
    >>> config.parse_choice_unless_default("Darkness")
    12
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Final, Iterator, List, Mapping, Optional, Tuple, TypeVar, Union

from tspl_filter.exceptions import DeviceOpenError, OptionParseError

__all__ = [
    "DEFAULT_MARKER",
    "PpdChoice",
    "PpdOption",
    "PpdFile",
    "EffectiveConfiguration",
    "resolve",
    "parse_flag",
]

logger: Final = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MARKER: Final[str] = "Default"

_HEADER: Final[str] = "*PPD-Adobe:"
_UI_TYPES: Final[frozenset[str]] = frozenset({"PickOne", "PickMany", "Boolean"})
_OPEN_UI: Final[frozenset[str]] = frozenset({"OpenUI", "JCLOpenUI"})
_CLOSE_UI: Final[frozenset[str]] = frozenset({"CloseUI", "JCLCloseUI"})

_LINE_RE: Final = re.compile(
    r"^\*(?P<keyword>[^\s:/]+)"
    r"(?:\s+(?P<option>[^:/]+?)(?:/(?P<text>[^:]*))?)?"
    r"\s*:\s*(?P<value>.*)$"
)

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"true", "on", "yes"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"false", "off", "no"})


# =============================================================================
# PPD MODEL
# =============================================================================


@dataclass(frozen=True, slots=True)
class PpdChoice:
    """One selectable value of a PPD option."""

    choice: str
    text: str = ""
    code: str = ""


@dataclass(slots=True)
class PpdOption:
    """
    A UI option declared between ``*OpenUI`` and ``*CloseUI``.

    ``marked`` is the choice currently in effect; it is only ever one of
    ``choices``.
    """

    keyword: str
    text: str = ""
    ui: str = "PickOne"
    group: str = ""
    default_choice: str = ""
    choices: List[PpdChoice] = field(default_factory=list)
    marked: Optional[PpdChoice] = None

    def find_choice(self, name: str) -> Optional[PpdChoice]:
        lowered = name.lower()
        for choice in self.choices:
            if choice.choice.lower() == lowered:
                return choice
        return None


class PpdFile:
    """
    Parsed PPD file.

    Holds the declared options (in file order), top-level attributes and
    the model number used to pick the TSPL emitter.
    """

    def __init__(
        self,
        options: List[PpdOption],
        attributes: Optional[Dict[str, str]] = None,
        path: Optional[str] = None,
    ) -> None:
        self._options = options
        self._by_keyword: Dict[str, PpdOption] = {o.keyword.lower(): o for o in options}
        self.attributes: Dict[str, str] = attributes or {}
        self.path = path

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def open_file(cls, path: Union[str, Path]) -> "PpdFile":
        """
        Read and parse a PPD file.

        Raises:
            DeviceOpenError: The file cannot be read or is not a valid PPD.
        """
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise DeviceOpenError(e.strerror or str(e), path=str(path)) from e
        return cls.parse(text, path=str(path))

    @classmethod
    def parse(cls, text: str, path: Optional[str] = None) -> "PpdFile":
        """Parse PPD source text. See the module docstring for the grammar."""
        return _PpdParser(text, path).run()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def options(self) -> Tuple[PpdOption, ...]:
        return tuple(self._options)

    @property
    def model_number(self) -> int:
        """``*cupsModelNumber`` value, 0 when the PPD does not declare one."""
        raw = self.attributes.get("cupsModelNumber")
        if raw is None:
            return 0
        return int(raw)

    def find_option(self, keyword: str) -> Optional[PpdOption]:
        return self._by_keyword.get(keyword.lower())

    def find_marked_choice(self, keyword: str) -> Optional[PpdChoice]:
        option = self.find_option(keyword)
        return option.marked if option is not None else None

    # -------------------------------------------------------------------------
    # Marking
    # -------------------------------------------------------------------------

    def mark_defaults(self) -> None:
        """Reset every option to its declared default choice."""
        for option in self._options:
            option.marked = option.find_choice(option.default_choice) if option.default_choice else None

    def mark_option(self, keyword: str, choice: str) -> bool:
        """
        Mark ``choice`` on option ``keyword``.

        Returns:
            True if both the option and the choice are declared.
        """
        option = self.find_option(keyword)
        if option is None:
            logger.debug("Ignoring unknown option %s=%s", keyword, choice)
            return False
        found = option.find_choice(choice)
        if found is None:
            logger.debug("Ignoring undeclared choice %s for option %s", choice, option.keyword)
            return False
        option.marked = found
        return True

    def mark_options(self, overrides: Mapping[str, str]) -> None:
        for keyword, choice in overrides.items():
            self.mark_option(keyword, choice)


# =============================================================================
# EFFECTIVE CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class EffectiveConfiguration:
    """
    Immutable snapshot of the marked choice of every PPD option.

    Values stay opaque strings until a caller parses them with
    :meth:`parse_choice_unless_default`.
    """

    model_number: int = 0
    choices: Tuple[Tuple[str, str], ...] = ()

    def as_dict(self) -> Dict[str, str]:
        return dict(self.choices)

    def __len__(self) -> int:
        return len(self.choices)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.choices)

    def find_choice(self, name: str) -> Optional[str]:
        """Marked choice of option ``name``, or None if it is undeclared or unmarked."""
        lowered = name.lower()
        for keyword, choice in self.choices:
            if keyword.lower() == lowered:
                return choice
        return None

    def parse_choice_unless_default(
        self,
        name: str,
        parser: Callable[[str], T] = int,  # type: ignore[assignment]
        default_marker: str = DEFAULT_MARKER,
    ) -> Optional[T]:
        """
        Parse the marked choice of ``name`` unless it is the default marker.

        Args:
            name: PPD option keyword.
            parser: Converts the literal choice, raising ValueError on bad
                    input (``int``, :func:`parse_flag`, ...).
            default_marker: Literal meaning "printer default".

        Returns:
            None when the option is absent, unmarked or set to the marker;
            the parsed value otherwise.

        Raises:
            OptionParseError: An explicit choice failed to parse.
        """
        choice = self.find_choice(name)
        if choice is None or choice == default_marker:
            return None
        try:
            return parser(choice)
        except (TypeError, ValueError) as e:
            raise OptionParseError(name, choice, str(e)) from e


def resolve(ppd: PpdFile, overrides: Mapping[str, str]) -> EffectiveConfiguration:
    """
    Build the job configuration: PPD defaults first, then job overrides.

    Overrides naming undeclared options or choices are ignored. Calling
    this twice with the same inputs gives equal results because marking
    always restarts from the defaults.
    """
    ppd.mark_defaults()
    ppd.mark_options(overrides)
    choices = tuple(
        (option.keyword, option.marked.choice) for option in ppd.options if option.marked is not None
    )
    config = EffectiveConfiguration(model_number=ppd.model_number, choices=choices)
    logger.debug("Effective configuration: %s", config.as_dict())
    return config


def parse_flag(value: str) -> bool:
    """
    Parse a boolean-ish PPD choice.

    Integers are true when non-zero; ``True/On/Yes`` and ``False/Off/No``
    are accepted in any case.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    return int(lowered) != 0


# =============================================================================
# PARSER
# =============================================================================


class _PpdParser:
    def __init__(self, text: str, path: Optional[str]) -> None:
        self.lines = text.splitlines()
        self.path = path
        self.index = 0
        self.options: List[PpdOption] = []
        self.by_keyword: Dict[str, PpdOption] = {}
        self.attributes: Dict[str, str] = {}
        self.defaults: Dict[str, Tuple[str, str]] = {}
        self.group = ""
        self.current: Optional[PpdOption] = None
        self.current_line = 0

    def fail(self, reason: str, line: Optional[int] = None) -> DeviceOpenError:
        return DeviceOpenError(reason, line=line if line is not None else self.index, path=self.path)

    def run(self) -> PpdFile:
        self._check_header()

        while self.index < len(self.lines):
            raw = self.lines[self.index]
            self.index += 1
            line_no = self.index
            if not raw.strip() or raw.startswith("*%") or not raw.startswith("*"):
                continue
            match = _LINE_RE.match(raw)
            if match is None:
                continue
            value = self._read_value(match.group("value"), line_no)
            self._handle(
                match.group("keyword"),
                (match.group("option") or "").strip(),
                (match.group("text") or "").strip(),
                value,
                line_no,
            )

        if self.current is not None:
            raise self.fail("Missing CloseUI/JCLCloseUI", self.current_line)

        self._apply_defaults()
        ppd = PpdFile(self.options, self.attributes, self.path)
        logger.debug("Loaded PPD %s: %d options, model %s", self.path, len(self.options), ppd.model_number)
        return ppd

    def _check_header(self) -> None:
        for number, raw in enumerate(self.lines, start=1):
            if not raw.strip():
                continue
            if not raw.startswith(_HEADER):
                raise self.fail("Missing PPD-Adobe-4.x header", number)
            return
        raise self.fail("Missing PPD-Adobe-4.x header", 1)

    def _read_value(self, value: str, line_no: int) -> str:
        value = value.strip()
        if not value.startswith('"'):
            return value
        body = value[1:]
        parts: List[str] = []
        while True:
            close = body.find('"')
            if close >= 0:
                parts.append(body[:close])
                return "\n".join(parts)
            parts.append(body)
            if self.index >= len(self.lines):
                raise self.fail("Unexpected end of file", line_no)
            body = self.lines[self.index]
            self.index += 1

    def _handle(self, keyword: str, option: str, text: str, value: str, line_no: int) -> None:
        if keyword in _OPEN_UI:
            if self.current is not None:
                raise self.fail("OpenUI/JCLOpenUI without a CloseUI/JCLCloseUI first", line_no)
            name = option.lstrip("*")
            if not name:
                raise self.fail("Bad OpenUI/JCLOpenUI", line_no)
            ui = value if value in _UI_TYPES else "PickOne"
            opt = self.by_keyword.get(name.lower())
            if opt is None:
                opt = PpdOption(keyword=name, text=text or name, ui=ui, group=self.group)
                self.options.append(opt)
                self.by_keyword[name.lower()] = opt
            self.current = opt
            self.current_line = line_no
        elif keyword in _CLOSE_UI:
            self.current = None
        elif keyword == "OpenGroup":
            self.group = value.split("/", 1)[0].strip()
        elif keyword == "CloseGroup":
            self.group = ""
        elif keyword.startswith("Default") and not option and len(keyword) > len("Default"):
            self.defaults[keyword[len("Default") :].lower()] = (keyword, value)
        elif option and keyword.lower() in self.by_keyword:
            opt = self.by_keyword[keyword.lower()]
            if opt.find_choice(option) is None:
                opt.choices.append(PpdChoice(choice=option, text=text or option, code=value))
        elif not option:
            self.attributes.setdefault(keyword, value)
            if keyword == "cupsModelNumber":
                try:
                    int(value)
                except ValueError:
                    raise self.fail(f"Bad cupsModelNumber {value!r}", line_no) from None

    def _apply_defaults(self) -> None:
        for lowered, (keyword, value) in self.defaults.items():
            option = self.by_keyword.get(lowered)
            if option is not None:
                option.default_choice = value
            else:
                self.attributes.setdefault(keyword, value)
