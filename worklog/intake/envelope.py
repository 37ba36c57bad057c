"""
Envelope Codec

Encodes and decodes the flat tag/value wrapper WeCom uses for both the
encrypted callback body and the decrypted inner message:

    <xml><ToUserName><![CDATA[ww123]]></ToUserName><AgentID>1000002</AgentID></xml>

Only single-level tag/value pairs are understood. This is a pattern matcher,
not an XML parser: malformed input yields an empty or partial mapping rather
than an error, and callers treat a missing tag as a data fault.
"""

import re
from typing import Dict, List, Mapping, Optional


ROOT_TAG = "xml"

# <Tag><![CDATA[value]]></Tag>  |  <Tag>value</Tag>
# Bare values cannot contain markup, which also keeps the root element from
# matching as a field.
_FIELD_PATTERN = re.compile(
    r"<(\w+)><!\[CDATA\[(.*?)\]\]></\1>|<(\w+)>([^<]*)</\3>",
    re.DOTALL,
)


def encode(fields: Mapping[str, str]) -> str:
    """
    Encode an ordered mapping as an envelope.

    Values are wrapped in CDATA and otherwise written verbatim; no entity
    escaping is applied.
    """
    parts = [f"<{ROOT_TAG}>"]
    for tag, value in fields.items():
        parts.append(f"<{tag}><![CDATA[{value}]]></{tag}>")
    parts.append(f"</{ROOT_TAG}>")
    return "".join(parts)


def decode(text: str) -> Dict[str, List[str]]:
    """
    Decode an envelope into tag -> values.

    Repeated tags append to the same list in encounter order.
    """
    result: Dict[str, List[str]] = {}
    if not text:
        return result

    for match in _FIELD_PATTERN.finditer(text):
        if match.group(1) is not None:
            tag, value = match.group(1), match.group(2)
        else:
            tag, value = match.group(3), match.group(4)
        result.setdefault(tag, []).append(value)

    return result


def first(envelope: Mapping[str, List[str]], tag: str) -> Optional[str]:
    """Return the first value recorded for tag, or None"""
    values = envelope.get(tag)
    if not values:
        return None
    return values[0]
