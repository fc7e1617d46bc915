# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Word pools used to build deceptive identifiers."""

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path

logger = logging.getLogger(__name__)

POOL_NAMES: tuple[str, ...] = (
    "Prefixes",
    "Nouns",
    "Suffixes",
    "Verbs",
    "Adjectives",
    "TechnicalNouns",
)

_COMMENT_PREFIXES: tuple[str, ...] = ("#", "//")

DEFAULT_PREFIXES: tuple[str, ...] = (
    "Base", "Abstract", "Generic", "Default", "Common", "Core", "Main",
    "System", "Application", "Service", "Business", "Data", "Entity",
    "Model", "View", "Controller", "Manager", "Handler", "Provider",
    "Factory", "Builder", "Helper", "Utility", "Processor", "Executor",
    "Coordinator", "Orchestrator", "Dispatcher", "Resolver", "Converter",
    "Adapter", "Wrapper", "Proxy", "Interceptor", "Validator", "Filter",
    "Formatter", "Parser", "Serializer", "Deserializer", "Encoder", "Decoder",
    "Compressor", "Decompressor", "Analyzer", "Optimizer", "Scheduler",
    "Initializer", "Configurator", "Registry", "Repository", "Context",
    "Session", "Transaction", "Connection", "Channel", "Stream", "Buffer",
    "Cache", "Pool", "Queue", "Stack", "Heap", "Tree", "Graph", "Map",
)

DEFAULT_NOUNS: tuple[str, ...] = (
    "Monitor", "Observer", "Watcher", "Tracker", "Logger", "Recorder",
    "Reader", "Writer", "Scanner", "Generator", "Creator", "Destroyer",
    "Loader", "Saver", "Fetcher", "Pusher", "Puller", "Sender", "Receiver",
    "Listener", "Notifier", "Publisher", "Subscriber", "Consumer", "Producer",
    "Worker", "Agent", "Client", "Server", "Host", "Guest", "Peer",
    "Node", "Cluster", "Network", "Protocol", "Message", "Event", "Signal",
    "Command", "Query", "Request", "Response", "Callback", "Hook", "Trigger",
    "Action", "Operation", "Task", "Job", "Process", "Thread", "Routine",
    "Function", "Method", "Procedure", "Algorithm", "Strategy", "Policy",
    "Rule", "Constraint", "Condition", "State", "Status", "Flag", "Token",
    "Key", "Value", "Pair", "Entry", "Item", "Element", "Component", "Module",
    "Package", "Bundle", "Container", "Wrapper", "Envelope", "Header", "Footer",
    "Body", "Content", "Payload", "Data", "Metadata", "Info", "Config",
    "Settings", "Options", "Parameters", "Arguments", "Attributes", "Properties",
    "Fields", "Members", "Variables", "Constants", "Literals", "References",
    "Pointers", "Handles", "Descriptors", "Identifiers", "Names", "Labels",
    "Tags", "Markers", "Indicators", "Counters", "Indexes", "Offsets",
)

DEFAULT_SUFFIXES: tuple[str, ...] = (
    "Engine", "Core", "System", "Framework", "Platform", "Infrastructure",
    "Service", "Manager", "Controller", "Handler", "Provider", "Factory",
    "Builder", "Adapter", "Wrapper", "Helper", "Utility", "Tool", "Kit",
    "Suite", "Set", "Collection", "Group", "Batch", "Bundle", "Package",
)

DEFAULT_VERBS: tuple[str, ...] = (
    "process", "handle", "manage", "execute", "perform", "run", "invoke",
    "call", "trigger", "fire", "dispatch", "route", "forward", "redirect",
    "transform", "convert", "parse", "format", "serialize", "deserialize",
    "encode", "decode", "encrypt", "decrypt", "compress", "decompress",
    "validate", "verify", "check", "test", "assert", "ensure", "confirm",
    "initialize", "setup", "configure", "prepare", "build", "create", "construct",
    "destroy", "dispose", "cleanup", "finalize", "terminate", "shutdown",
    "start", "stop", "pause", "resume", "restart", "reset", "refresh", "reload",
    "update", "modify", "change", "alter", "adjust", "tune", "optimize",
    "save", "load", "store", "retrieve", "fetch", "get", "set", "put",
    "add", "remove", "delete", "insert", "append", "prepend", "push", "pop",
    "enqueue", "dequeue", "peek", "poll", "offer", "take", "drain", "fill",
    "read", "write", "scan", "search", "find", "lookup", "query", "filter",
    "sort", "order", "arrange", "organize", "group", "aggregate", "collect",
    "map", "reduce", "fold", "flatten", "expand", "collapse", "merge", "split",
    "join", "combine", "unite", "separate", "divide", "partition", "segment",
    "send", "receive", "transmit", "broadcast", "publish", "subscribe", "notify",
    "listen", "watch", "observe", "monitor", "track", "record", "log", "trace",
    "sync", "async", "await", "yield", "return", "complete", "finish", "end",
)

DEFAULT_ADJECTIVES: tuple[str, ...] = (
    "current", "previous", "next", "first", "last", "initial", "final",
    "primary", "secondary", "temporary", "permanent", "local", "global",
    "internal", "external", "public", "private", "protected", "static",
    "dynamic", "virtual", "abstract", "concrete", "generic", "specific",
    "default", "custom", "standard", "extended", "advanced", "basic",
    "simple", "complex", "composite", "atomic", "shared", "exclusive",
    "cached", "buffered", "pooled", "queued", "stacked", "mapped",
    "sorted", "filtered", "validated", "verified", "encoded", "decoded",
)

DEFAULT_TECHNICAL_NOUNS: tuple[str, ...] = (
    "buffer", "cache", "pool", "queue", "stack", "heap", "list", "array",
    "vector", "matrix", "table", "map", "set", "tree", "graph", "node",
    "edge", "vertex", "path", "route", "link", "chain", "sequence", "stream",
    "channel", "socket", "port", "endpoint", "address", "uri", "url",
    "connection", "session", "context", "scope", "namespace", "domain",
    "range", "interval", "boundary", "limit", "threshold", "offset", "index",
    "position", "location", "coordinate", "dimension", "size", "length",
    "width", "height", "depth", "capacity", "count", "total", "sum",
    "average", "minimum", "maximum", "value", "result", "output", "input",
    "source", "target", "destination", "origin", "reference", "instance",
    "object", "entity", "record", "row", "column", "field", "property",
    "attribute", "member", "element", "item", "entry", "key", "token",
    "identifier", "name", "label", "tag", "marker", "flag", "state",
    "status", "code", "type", "kind", "category", "class", "group",
    "metadata", "info", "data", "content", "payload", "message", "event",
)


class DictionaryFormatError(ValueError):
    """Represent an unusable custom dictionary document."""


@dataclass(frozen=True)
class Dictionary:
    """Hold the six word pools used by the name generator.

    Attributes:
        prefixes: Leading words for type names.
        nouns: Core nouns for type and method names.
        suffixes: Trailing words for type names.
        verbs: Leading words for method names.
        adjectives: Qualifiers for member and variable names.
        technical_nouns: Nouns for member and variable names.
    """

    prefixes: tuple[str, ...] = DEFAULT_PREFIXES
    nouns: tuple[str, ...] = DEFAULT_NOUNS
    suffixes: tuple[str, ...] = DEFAULT_SUFFIXES
    verbs: tuple[str, ...] = DEFAULT_VERBS
    adjectives: tuple[str, ...] = DEFAULT_ADJECTIVES
    technical_nouns: tuple[str, ...] = DEFAULT_TECHNICAL_NOUNS

    def empty_pools(self) -> list[str]:
        """Return names of pools that have no words.

        Returns:
            Pool names in declaration order.
        """
        return [
            pool_name
            for pool_name in POOL_NAMES
            if not getattr(self, _field_name(pool_name))
        ]


def parse_dictionary(text: str, base: Dictionary) -> Dictionary:
    """Parse custom dictionary text on top of an existing dictionary.

    Text starting with ``{`` is read as a structured document naming any subset
    of the pools. Anything else is a flat word list that replaces both the
    noun and technical-noun pools.

    Args:
        text: Dictionary file content.
        base: Dictionary providing words for pools the document leaves out.

    Returns:
        Updated dictionary.

    Raises:
        DictionaryFormatError: If the document is malformed or yields no words.
    """
    if text.lstrip().startswith("{"):
        return _parse_structured(text=text, base=base)
    words = parse_word_list(text)
    if not words:
        raise DictionaryFormatError("Word list does not contain any words.")
    return replace(base, nouns=words, technical_nouns=words)


def parse_word_list(text: str) -> tuple[str, ...]:
    """Parse a newline-delimited word list.

    Args:
        text: Raw word list.

    Returns:
        Trimmed words without comments and case-insensitive duplicates, in
        first-seen order.
    """
    seen: set[str] = set()
    words: list[str] = []
    for line in text.splitlines():
        word = line.strip()
        if not word or word.startswith(_COMMENT_PREFIXES):
            continue
        folded = word.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        words.append(word)
    return tuple(words)


def load_dictionary(path: Path, base: Dictionary) -> Dictionary:
    """Read and parse a custom dictionary file.

    Args:
        path: Dictionary file path.
        base: Dictionary providing words for pools the file leaves out.

    Returns:
        Updated dictionary.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not valid UTF-8.
        DictionaryFormatError: If the content is malformed.
    """
    return parse_dictionary(text=path.read_text(encoding="utf-8"), base=base)


def _parse_structured(text: str, base: Dictionary) -> Dictionary:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DictionaryFormatError(f"Invalid JSON dictionary: {exc}") from exc
    if not isinstance(document, dict):
        raise DictionaryFormatError("Dictionary document must be a JSON object.")

    folded_pools = {pool_name.casefold(): pool_name for pool_name in POOL_NAMES}
    updates: dict[str, tuple[str, ...]] = {}
    for key, value in document.items():
        pool_name = folded_pools.get(str(key).casefold())
        if pool_name is None:
            logger.debug(f"Ignoring unknown dictionary field (field={key})")
            continue
        if value is None:
            continue
        if not isinstance(value, list) or not all(
            isinstance(word, str) for word in value
        ):
            raise DictionaryFormatError(
                f"Dictionary field {pool_name} must be a list of strings."
            )
        if value:
            updates[_field_name(pool_name)] = tuple(value)
    return replace(base, **updates)


def _field_name(pool_name: str) -> str:
    """Map a document pool name to its dataclass field.

    Args:
        pool_name: Pool name such as ``TechnicalNouns``.

    Returns:
        Field name such as ``technical_nouns``.
    """
    chars: list[str] = []
    for index, char in enumerate(pool_name):
        if char.isupper() and index > 0:
            chars.append("_")
        chars.append(char.lower())
    return "".join(chars)
