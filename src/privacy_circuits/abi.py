"""
privacy_circuits/abi.py
Contract ABI helpers: function lookup, call encoding and static sizes.
"""
import binascii
from typing import Any, Dict, Mapping, Optional, Sequence

from eth_abi import encode
from eth_abi.exceptions import EncodingError, ParseError
from eth_abi.grammar import ABIType, TupleType, parse
from eth_utils import (
    abi_to_signature,
    collapse_if_tuple,
    filter_abi_by_name,
    function_abi_to_4byte_selector,
    get_abi_input_types,
    to_bytes,
)

from .constants import WORD_SIZE
from .errors import AbiError

AbiEntry = Dict[str, Any]


def canonical_type(param: Mapping[str, Any]) -> str:
    """Collapse an ABI parameter into its canonical type string.

    Tuples become ``(t1,t2,...)`` followed by any array suffix.
    """
    return collapse_if_tuple(dict(param))


def function_signature(entry: Mapping[str, Any]) -> str:
    return abi_to_signature(dict(entry))


def parse_type(param: Mapping[str, Any]) -> ABIType:
    """Parse a parameter's canonical type with the eth_abi grammar.

    Raises:
        AbiError: If the type string is malformed
    """
    type_str = canonical_type(param)
    try:
        return parse(type_str)
    except ParseError as exc:
        raise AbiError(f"Invalid ABI type {type_str}: {exc}") from exc


def find_function(abi: Sequence[Mapping[str, Any]], name: str) -> AbiEntry:
    """Resolve a function by bare name or by full signature.

    Raises:
        AbiError: If nothing matches or a bare name is overloaded
    """
    wanted = name.replace(' ', '')
    bare_name = wanted.split('(', 1)[0]
    matches = [
        entry for entry in filter_abi_by_name(bare_name, list(abi))
        if entry['type'] == 'function'
    ]
    if '(' in wanted:
        matches = [entry for entry in matches if abi_to_signature(entry) == wanted]

    if not matches:
        raise AbiError(f"Function not found in ABI: {name}")
    if len(matches) > 1:
        raise AbiError(f"Function name {name} is overloaded; pass a full signature")
    return dict(matches[0])


def _word_count(abi_type: ABIType) -> int:
    if isinstance(abi_type, TupleType):
        words = sum(_word_count(component) for component in abi_type.components)
    else:
        words = 1
    for dims in abi_type.arrlist or ():
        words *= dims[0]
    return words


def static_word_count(param: Mapping[str, Any]) -> Optional[int]:
    """Number of 32-byte words a parameter occupies inline.

    Returns ``None`` for dynamic types, which are encoded out of line.
    """
    abi_type = parse_type(param)
    if abi_type.is_dynamic:
        return None
    return _word_count(abi_type)


def static_byte_size(param: Mapping[str, Any]) -> Optional[int]:
    words = static_word_count(param)
    return None if words is None else words * WORD_SIZE


def _normalize(param: Mapping[str, Any], abi_type: ABIType, value: Any) -> Any:
    """Coerce friendly values (hex strings for bytes) into what eth_abi expects.

    ``param`` supplies component names for tuples given as mappings;
    ``abi_type`` drives the recursion through arrays and tuples.
    """
    if abi_type.is_array:
        return [_normalize(param, abi_type.item_type, item) for item in value]

    if isinstance(abi_type, TupleType):
        components = param.get('components', [])
        if isinstance(value, Mapping):
            value = [value[component['name']] for component in components]
        if len(value) != len(components):
            raise AbiError(
                f"Tuple {param.get('name', '')} expects {len(components)} values, got {len(value)}"
            )
        return tuple(
            _normalize(component, component_type, item)
            for component, component_type, item in zip(components, abi_type.components, value)
        )

    if abi_type.base == 'bytes' and isinstance(value, str):
        return to_bytes(hexstr=value)
    return value


def encode_function_call(entry: Mapping[str, Any], args: Sequence[Any]) -> bytes:
    """Encode ``selector || abi.encode(args)`` for a function entry.

    Raises:
        AbiError: If the argument count or values do not fit the ABI
    """
    entry = dict(entry)
    inputs = entry.get('inputs', [])
    if len(args) != len(inputs):
        raise AbiError(
            f"{entry.get('name')} expects {len(inputs)} arguments, got {len(args)}"
        )

    types = get_abi_input_types(entry)
    signature = abi_to_signature(entry)
    try:
        values = [
            _normalize(param, parse_type(param), value) for param, value in zip(inputs, args)
        ]
        return function_abi_to_4byte_selector(entry) + encode(types, values)
    except (
        EncodingError, TypeError, ValueError, OverflowError, KeyError, binascii.Error
    ) as exc:
        raise AbiError(f"Cannot encode {signature}: {exc}") from exc
