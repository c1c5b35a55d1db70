"""
sigvault_core.commands
----------------------
Transport-independent request/response contract for a Vault.

    dispatch(vault, "sign_document", {"documentPath": ..., "keyId": ..., ...})
      -> {"ok": True, "result": None}
      -> {"ok": False, "error": {"kind": "InvalidPassword", "message": "..."}}

Argument names may be snake_case or camelCase. `adispatch` runs the same
call in a worker thread for async callers (UI bridges, IPC servers).
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Tuple
import asyncio
import re

from .contracts import SigningOptions
from .errors import InvalidInput, VaultError
from .logger import get_logger
from .vault import Vault

log = get_logger("SigVault.Commands")

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

# operation -> (required args, optional args)
OPERATIONS: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "generate_key_pair": (("name", "algorithm", "password"), ()),
    "list_keys": ((), ()),
    "get_key_details": (("key_id",), ()),
    "sign_document": (("document_path", "key_id", "password", "output_path"), ("options", "format", "timeout")),
    "verify_signature": (("document_path", "signature_path", "key_id"), ("timeout",)),
}


def _snake(name: str) -> str:
    return _CAMEL.sub("_", name).lower()


def _normalize_args(operation: str, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if operation not in OPERATIONS:
        raise InvalidInput(f"Unknown operation: {operation}")
    if args is not None and not isinstance(args, dict):
        raise InvalidInput("Arguments must be an object")
    required, optional = OPERATIONS[operation]
    out: Dict[str, Any] = {}
    for key, value in (args or {}).items():
        name = _snake(key)
        # "algStr" is accepted as an alias for "algorithm"
        if name == "alg_str":
            name = "algorithm"
        out[name] = value
    missing = [a for a in required if a not in out]
    if missing:
        raise InvalidInput(f"{operation}: missing argument(s) {', '.join(missing)}")
    unexpected = [a for a in out if a not in required and a not in optional]
    if unexpected:
        raise InvalidInput(f"{operation}: unexpected argument(s) {', '.join(sorted(unexpected))}")
    return out


def _serialize(result: Any) -> Any:
    if result is None:
        return None
    if isinstance(result, list):
        return [_serialize(r) for r in result]
    return result.to_dict()


def _sign(vault: Vault, args: Dict[str, Any]):
    options = args.pop("options", None)
    fmt = args.pop("format", None)
    if options is None and fmt is not None:
        options = {"format": fmt}
    if not isinstance(options, SigningOptions):
        if options is not None and not isinstance(options, dict):
            raise InvalidInput("options must be an object")
        options = SigningOptions.from_dict(options)
    return vault.sign_document(options=options, **args)


_HANDLERS: Dict[str, Callable[[Vault, Dict[str, Any]], Any]] = {
    "generate_key_pair": lambda v, a: v.generate_key_pair(**a),
    "list_keys": lambda v, a: v.list_keys(),
    "get_key_details": lambda v, a: v.get_key_details(**a),
    "sign_document": _sign,
    "verify_signature": lambda v, a: v.verify_signature(**a),
}


def dispatch(vault: Vault, operation: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        normalized = _normalize_args(operation, args)
        result = _HANDLERS[operation](vault, normalized)
    except VaultError as e:
        log.info(f"[CMD] {operation} -> {e.kind}")
        return {"ok": False, "error": e.to_dict()}
    log.debug(f"[CMD] {operation} -> ok")
    return {"ok": True, "result": _serialize(result)}


async def adispatch(vault: Vault, operation: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return await asyncio.to_thread(dispatch, vault, operation, args)
