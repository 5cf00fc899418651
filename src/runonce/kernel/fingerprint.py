"""Changeset fingerprints with explicit canonicalization rules.

A fingerprint is the SHA256 of the canonical JSON form of a changeset's
action definitions. It must be stable across processes and machines so that
a changeset applied yesterday is recognized today, and it must change when
an action's definition changes.

Canonicalization rules:
- Object keys sorted recursively
- Arrays preserve order
- Floats BANNED (hard validation error)
- Strings normalized to NFC
- Non-JSON types forbidden
"""

import ast
import enum
import functools
import hashlib
import inspect
import json
import textwrap
import types
import unicodedata
from typing import Any, Iterable, Optional


class CanonicalizationError(ValueError):
    """Raised when an object cannot be canonicalized."""
    pass


def _normalize_string(s: str) -> str:
    """Normalize string to NFC (Unicode Normalization Form Canonical Composition)."""
    return unicodedata.normalize('NFC', s)


def _validate_json_type(obj: Any, path: str = "") -> None:
    """Validate that object contains only JSON-compatible types.

    Raises CanonicalizationError if non-JSON types are found.
    """
    if obj is None or isinstance(obj, (bool, int, str)):
        return
    elif isinstance(obj, float):
        raise CanonicalizationError(
            f"Floats are not allowed in fingerprint payloads (at {path}). Use strings for decimals instead."
        )
    elif isinstance(obj, dict):
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Dictionary keys must be strings at {path}, got {type(key).__name__}"
                )
            _validate_json_type(value, f"{path}.{key}" if path else key)
    elif isinstance(obj, (list, tuple)):
        for i, item in enumerate(obj):
            _validate_json_type(item, f"{path}[{i}]" if path else f"[{i}]")
    else:
        raise CanonicalizationError(
            f"Non-JSON type at {path}: {type(obj).__name__}. "
            f"Only None, bool, int, str, dict, and list are allowed."
        )


def _canonicalize_value(obj: Any) -> Any:
    if isinstance(obj, str):
        return _normalize_string(obj)
    elif isinstance(obj, dict):
        return {
            _normalize_string(k): _canonicalize_value(v)
            for k, v in sorted(obj.items())
        }
    elif isinstance(obj, (list, tuple)):
        return [_canonicalize_value(item) for item in obj]
    return obj


def canonicalize_json(obj: Any) -> str:
    """Canonicalize a JSON-serializable object to a stable string representation.

    Args:
        obj: The object to canonicalize

    Returns:
        Canonical JSON string

    Raises:
        CanonicalizationError: If object contains floats or non-JSON types
    """
    _validate_json_type(obj)
    canonicalized = _canonicalize_value(obj)
    return json.dumps(canonicalized, sort_keys=True, ensure_ascii=False, separators=(',', ':'))


def hash_payload(payload: Any) -> str:
    """Compute SHA256 hash of a canonicalized payload.

    Returns:
        SHA256 hash as hex string (prefixed with "sha256:")
    """
    canonical_str = canonicalize_json(payload)
    digest = hashlib.sha256(canonical_str.encode('utf-8')).hexdigest()
    return f"sha256:{digest}"


def _code_digest(code: types.CodeType) -> str:
    """Digest of a compiled code object, used when no source is retrievable.

    Nested code objects (inner functions, lambdas, comprehensions) are folded
    in recursively; their filenames and line numbers are not.
    """
    h = hashlib.sha256()
    h.update(code.co_code)
    for name in code.co_names:
        h.update(name.encode('utf-8'))
        h.update(b'\0')
    for const in code.co_consts:
        if isinstance(const, types.CodeType):
            h.update(_code_digest(const).encode('ascii'))
        else:
            h.update(repr(const).encode('utf-8'))
        h.update(b'\0')
    return h.hexdigest()


def _qualified_name(obj: Any) -> str:
    qualname = getattr(obj, "__qualname__", None) or getattr(obj, "__name__", None) or type(obj).__qualname__
    module = getattr(obj, "__module__", None)
    return f"{module}.{qualname}" if module else qualname


def _sort_key(described: Any) -> str:
    return canonicalize_json(described)


def _state_value(value: Any, seen: frozenset, mutable: bool = False) -> Any:
    """JSON-compatible description of a value an action depends on.

    Immutable values are described by content, functions by their
    definition, other objects by their type. Lists, dicts and sets
    contribute their content only when mutable is set (action attributes),
    otherwise only their type.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return {"float": repr(value)}
    if isinstance(value, bytes):
        return {"bytes": hashlib.sha256(value).hexdigest()}
    if isinstance(value, enum.Enum):
        return {"enum": f"{_qualified_name(type(value))}.{value.name}"}
    if isinstance(value, type):
        return {"class": _qualified_name(value)}
    if isinstance(value, types.ModuleType):
        return {"module": value.__name__}
    if id(value) in seen:
        return {"ref": _qualified_name(type(value))}
    seen = seen | {id(value)}
    if isinstance(value, tuple):
        return [_state_value(item, seen, mutable) for item in value]
    if isinstance(value, frozenset):
        return {"set": sorted((_state_value(item, seen, mutable) for item in value), key=_sort_key)}
    if isinstance(value, (list, dict, set)):
        if not mutable:
            return {"mutable": type(value).__name__}
        if isinstance(value, list):
            return [_state_value(item, seen, mutable) for item in value]
        if isinstance(value, set):
            return {"set": sorted((_state_value(item, seen, mutable) for item in value), key=_sort_key)}
        pairs = [[_state_value(k, seen, mutable), _state_value(v, seen, mutable)] for k, v in value.items()]
        return {"dict": sorted(pairs, key=lambda pair: _sort_key(pair[0]))}
    if isinstance(value, functools.partial) or inspect.isroutine(value):
        return _describe(value, seen)
    return {"object": _qualified_name(type(value))}


def _function_source(func: types.FunctionType) -> Optional[str]:
    try:
        return textwrap.dedent(inspect.getsource(func)).strip()
    except (OSError, TypeError):
        return None


def _lambda_source(func: types.FunctionType) -> Optional[str]:
    """Source of the lambda expression alone.

    None when the source is unavailable or another lambda starts on the
    same line.
    """
    try:
        lines, _ = inspect.findsource(func)
        source = "".join(lines)
        tree = ast.parse(source)
    except (OSError, TypeError, SyntaxError, ValueError):
        return None
    first_line = func.__code__.co_firstlineno
    candidates = [
        node for node in ast.walk(tree)
        if isinstance(node, ast.Lambda) and node.lineno == first_line
    ]
    if len(candidates) != 1:
        return None
    return ast.get_source_segment(source, candidates[0])


def _captured_values(func: types.FunctionType, seen: frozenset) -> dict:
    """Closure cells and defaults a function was created with."""
    captured = {}
    cells = {}
    for name, cell in zip(func.__code__.co_freevars, func.__closure__ or ()):
        try:
            cells[name] = _state_value(cell.cell_contents, seen)
        except ValueError:
            cells[name] = {"empty": True}
    if cells:
        captured["closure"] = cells
    if func.__defaults__:
        captured["defaults"] = [_state_value(v, seen) for v in func.__defaults__]
    if func.__kwdefaults__:
        captured["kwdefaults"] = {k: _state_value(v, seen) for k, v in func.__kwdefaults__.items()}
    return captured


def _instance_state(obj: Any, seen: frozenset, mutable: bool = True) -> dict:
    state = dict(getattr(obj, "__dict__", {}))
    for klass in type(obj).__mro__:
        slots = getattr(klass, "__slots__", ())
        for slot in (slots,) if isinstance(slots, str) else slots:
            if slot not in ("__dict__", "__weakref__") and slot not in state and hasattr(obj, slot):
                state[slot] = getattr(obj, slot)
    return {name: _state_value(value, seen, mutable) for name, value in sorted(state.items())}


def _describe_object(obj: Any, method_name: str, seen: frozenset) -> dict:
    """Payload for an object: its class, the named method, and its attributes."""
    seen = seen | {id(obj)}
    cls = type(obj)
    payload = {"kind": "object", "class": _qualified_name(cls), "state": _instance_state(obj, seen)}
    method = getattr(cls, method_name, None)
    if method is not None:
        payload[method_name] = _describe(method, seen)
    return payload


def _describe(func: Any, seen: frozenset) -> dict:
    seen = seen | {id(func)}
    target = inspect.unwrap(func)
    if isinstance(target, functools.partial):
        return {
            "kind": "partial",
            "func": _describe(target.func, seen),
            "args": [_state_value(arg, seen) for arg in target.args],
            "keywords": {k: _state_value(v, seen) for k, v in target.keywords.items()},
        }
    if inspect.ismethod(target):
        owner = target.__self__
        if isinstance(owner, (type, types.ModuleType)):
            owner_payload = _state_value(owner, seen)
        else:
            owner_payload = {
                "class": _qualified_name(type(owner)),
                "state": _instance_state(owner, seen | {id(owner)}, mutable=False),
            }
        return {"kind": "method", "self": owner_payload, "func": _describe(target.__func__, seen)}
    if not inspect.isroutine(target):
        return _describe_object(target, "__call__", seen)
    code = getattr(target, "__code__", None)
    if code is None:
        return {"kind": "builtin", "name": _qualified_name(target)}

    if target.__name__ == "<lambda>":
        source = _lambda_source(target)
    else:
        source = _function_source(target)
    payload = {"kind": "callable"}
    if source is not None:
        payload["source"] = source
    else:
        payload["code"] = f"sha256:{_code_digest(code)}"
    payload.update(_captured_values(target, seen))
    return payload


def describe_callable(func: Any) -> dict:
    """Fingerprint payload for a plain callable.

    Functions are described by their dedented source (a lambda by its own
    expression), falling back to a bytecode digest, plus the values they
    captured. Partials add their bound arguments, builtins their qualified
    name, callable objects their class and attributes.
    """
    return _describe(func, frozenset())


def action_payload(action: Any) -> Any:
    """Fingerprint payload of one action.

    Actions may define fingerprint_payload() to control what counts as
    their content; otherwise the action's class, execute() definition and
    attributes are used.
    """
    provider = getattr(action, "fingerprint_payload", None)
    if callable(provider):
        return provider()
    return _describe_object(action, "execute", frozenset())


def fingerprint_actions(actions: Iterable[Any]) -> str:
    """Fingerprint of an ordered sequence of actions."""
    return hash_payload({"actions": [action_payload(action) for action in actions]})
