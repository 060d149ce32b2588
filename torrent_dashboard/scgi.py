"""
SCGI framing and XML-RPC encoding for rTorrent.

A request is a netstring header block followed by an XML-RPC ``methodCall``::

    70:CONTENT_LENGTH\\0<n>\\0SCGI\\01\\0REQUEST_METHOD\\0POST\\0REQUEST_URI\\0/RPC2\\0,<body>

rTorrent answers with HTTP-style header lines (``Status``, ``Content-Type``,
``Content-Length``), a blank line, then an XML-RPC ``methodResponse``.

Encoding reuses ``xmlrpc.client.Marshaller`` with 64-bit integers written as
``<i8>`` the way rTorrent does. Decoding walks the XML tree itself so that any
tag other than string, integer or array is rejected instead of being coerced
into a string. Everything here is a pure function of its input.
"""

import base64
import re
from typing import Dict, Iterable, List, Optional, Tuple, Union
from xml.etree import ElementTree
from xml.sax.saxutils import escape
from xmlrpc import client

from .errors import IncompleteFrameError, MalformedFrameError, UnsupportedTypeError
from .models import Fault, RemoteCall, RemoteResponse, Value


REQUEST_URI = "/RPC2"
SCGI_VERSION = "1"
INTEGER_TAGS = ("int", "i4", "i8")

_HEADER_TERMINATORS = (b"\r\n\r\n", b"\n\n")
_NETSTRING_PREFIX = re.compile(rb"^(\d+):")
# Control characters XML 1.0 does not allow, even as character references
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f]")


class _Marshaller(client.Marshaller):
    """Marshaller that writes integers beyond 32 bits as <i8> and keeps CRs in strings."""
    dispatch = dict(client.Marshaller.dispatch)

    def dump_long(self, value, write):
        tag = "int" if client.MININT <= value <= client.MAXINT else "i8"
        write(f"<value><{tag}>{int(value)}</{tag}></value>\n")

    dispatch[int] = dump_long

    def dump_unicode(self, value, write, escape=client.escape):
        # A raw CR would come back as LF after XML end-of-line normalisation
        write("<value><string>")
        write(escape(value).replace("\r", "&#13;"))
        write("</string></value>\n")

    dispatch[str] = dump_unicode


def _check_argument(value, path="argument"):
    """Reject argument types rTorrent's XML-RPC layer is not given by this client."""
    if isinstance(value, bool):
        raise UnsupportedTypeError(f"{path}: boolean values are not supported")
    if isinstance(value, str):
        if _XML_ILLEGAL.search(value):
            raise UnsupportedTypeError(f"{path}: string contains characters XML cannot carry")
        return
    if isinstance(value, (int, bytes)):
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_argument(item, f"{path}[{i}]")
        return
    if isinstance(value, dict):
        # Structs only appear as system.multicall entries
        for key, item in value.items():
            if not isinstance(key, str):
                raise UnsupportedTypeError(f"{path}: struct keys must be strings")
            _check_argument(item, f"{path}.{key}")
        return
    raise UnsupportedTypeError(f"{path}: unsupported type {type(value).__name__}")


def _marshal(params) -> str:
    return _Marshaller("utf-8").dumps(params)


def encode_body(call: RemoteCall) -> bytes:
    for i, arg in enumerate(call.args):
        _check_argument(arg, f"{call.method} argument {i}")
    params = _marshal(tuple(call.args))
    return (
        "<?xml version=\"1.0\"?>\n"
        "<methodCall>\n"
        f"<methodName>{escape(call.method)}</methodName>\n"
        f"{params}"
        "</methodCall>\n"
    ).encode("utf-8")


def encode(call: RemoteCall) -> bytes:
    """Encode a remote call as an SCGI request."""
    body = encode_body(call)
    headers = (
        f"CONTENT_LENGTH\0{len(body)}\0"
        f"SCGI\0{SCGI_VERSION}\0"
        f"REQUEST_METHOD\0POST\0"
        f"REQUEST_URI\0{REQUEST_URI}\0"
    ).encode("ascii")
    return str(len(headers)).encode("ascii") + b":" + headers + b"," + body


def _split_response(data: bytes) -> Tuple[Dict[str, str], int, int]:
    """
    Locate the header block of a response.

    Returns (headers, body offset, declared content length). Raises
    IncompleteFrameError when the header block has not fully arrived.
    """
    found = [(data.find(t), t) for t in _HEADER_TERMINATORS if data.find(t) != -1]
    if not found:
        raise IncompleteFrameError("Response header block is not terminated")
    end, terminator = min(found)

    headers = {}
    for line in data[:end].decode("latin-1").splitlines():
        if not line.strip():
            continue
        name, sep, value = line.partition(":")
        if not sep:
            raise MalformedFrameError(f"Invalid response header line: {line!r}")
        headers[name.strip().lower()] = value.strip()

    if "content-length" not in headers:
        raise MalformedFrameError("Response has no Content-Length header")
    try:
        length = int(headers["content-length"])
    except ValueError:
        raise MalformedFrameError(f"Invalid Content-Length: {headers['content-length']!r}")
    if length < 0:
        raise MalformedFrameError(f"Invalid Content-Length: {length}")

    return headers, end + len(terminator), length


def frame_length(data: bytes) -> Optional[int]:
    """Total size of the response frame in ``data``, or None while headers are incomplete."""
    try:
        _, offset, length = _split_response(data)
    except IncompleteFrameError:
        return None
    except MalformedFrameError:
        return None
    return offset + length


def _response_body(data: bytes) -> bytes:
    _, offset, length = _split_response(data)
    body = data[offset:]
    if len(body) < length:
        raise IncompleteFrameError(f"Expected {length} body bytes, received {len(body)}")
    if len(body) > length:
        raise MalformedFrameError(f"Content-Length is {length} but body has {len(body)} bytes")
    return body


def _parse_xml(body: bytes, root_tag: str) -> ElementTree.Element:
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise MalformedFrameError(f"Invalid XML-RPC document: {e}")
    if root.tag != root_tag:
        raise MalformedFrameError(f"Expected <{root_tag}>, got <{root.tag}>")
    return root


def _parse_value(elem: ElementTree.Element, extended: bool = False):
    """
    Decode a <value> element.

    Strings, integers and arrays are always accepted. ``extended`` also allows
    base64 and struct, which only appear in requests.
    """
    if elem.tag != "value":
        raise MalformedFrameError(f"Expected <value>, got <{elem.tag}>")
    children = list(elem)
    if not children:
        return elem.text or ""
    if len(children) > 1:
        raise MalformedFrameError("<value> holds more than one element")

    node = children[0]
    tag = node.tag
    if tag == "string":
        return node.text or ""
    if tag in INTEGER_TAGS:
        try:
            return int((node.text or "").strip())
        except ValueError:
            raise MalformedFrameError(f"Invalid <{tag}> value: {node.text!r}")
    if tag == "array":
        data = node.find("data")
        if data is None:
            return []
        return [_parse_value(item, extended) for item in data]
    if extended and tag == "base64":
        return base64.b64decode(node.text or "")
    if extended and tag == "struct":
        return _parse_struct(node, extended)
    raise UnsupportedTypeError(f"Unsupported XML-RPC value type <{tag}>")


def _parse_struct(node: ElementTree.Element, extended: bool = False) -> dict:
    result = {}
    for member in node.findall("member"):
        name = member.find("name")
        value = member.find("value")
        if name is None or value is None:
            raise MalformedFrameError("Struct member is missing <name> or <value>")
        result[name.text or ""] = _parse_value(value, extended)
    return result


def _parse_fault(value: ElementTree.Element) -> Fault:
    struct = value.find("struct")
    if struct is None:
        raise MalformedFrameError("Fault does not carry a struct")
    fields = _parse_struct(struct)
    try:
        return Fault(code=int(fields["faultCode"]), message=str(fields["faultString"]))
    except (KeyError, ValueError):
        raise MalformedFrameError(f"Invalid fault struct: {fields!r}")


def _param_values(root: ElementTree.Element, extended: bool = False) -> List:
    params = root.find("params")
    if params is None:
        return []
    values = []
    for param in params.findall("param"):
        value = param.find("value")
        if value is None:
            raise MalformedFrameError("<param> without <value>")
        values.append(_parse_value(value, extended))
    return values


def decode(data: bytes) -> RemoteResponse:
    """Decode an SCGI response into a RemoteResponse (values or fault)."""
    root = _parse_xml(_response_body(data), "methodResponse")
    fault = root.find("fault")
    if fault is not None:
        value = fault.find("value")
        if value is None:
            raise MalformedFrameError("<fault> without <value>")
        return RemoteResponse(fault=_parse_fault(value))
    return RemoteResponse(values=tuple(_param_values(root)))


def decode_multicall(data: bytes) -> List[RemoteResponse]:
    """
    Decode a system.multicall response into one RemoteResponse per sub-call.

    Each entry is either a one-element array holding the sub-call's result or
    a fault struct. A fault for the multicall as a whole is returned as a
    single-element list holding that fault.
    """
    root = _parse_xml(_response_body(data), "methodResponse")
    fault = root.find("fault")
    if fault is not None:
        value = fault.find("value")
        if value is None:
            raise MalformedFrameError("<fault> without <value>")
        return [RemoteResponse(fault=_parse_fault(value))]

    params = root.find("params")
    param = params.find("param") if params is not None else None
    value = param.find("value") if param is not None else None
    array = value.find("array") if value is not None else None
    if array is None:
        raise MalformedFrameError("system.multicall result is not an array")

    results = []
    data_elem = array.find("data")
    for entry in (data_elem if data_elem is not None else []):
        inner = list(entry)
        if len(inner) != 1:
            raise MalformedFrameError("Invalid system.multicall entry")
        if inner[0].tag == "struct":
            results.append(RemoteResponse(fault=_parse_fault(entry)))
        elif inner[0].tag == "array":
            results.append(RemoteResponse(values=tuple(_parse_value(entry))))
        else:
            raise MalformedFrameError(f"Unexpected system.multicall entry <{inner[0].tag}>")
    return results


def _split_request(data: bytes) -> Tuple[Dict[str, str], bytes]:
    match = _NETSTRING_PREFIX.match(data)
    if match is None:
        if data.isdigit() or not data:
            raise IncompleteFrameError("Request netstring length is incomplete")
        raise MalformedFrameError("Request does not start with a netstring length")
    start = match.end()
    size = int(match.group(1))
    if len(data) < start + size + 1:
        raise IncompleteFrameError("Request header block is incomplete")
    if data[start + size:start + size + 1] != b",":
        raise MalformedFrameError("Request header netstring is not terminated by ','")

    items = data[start:start + size].split(b"\0")
    if items and items[-1] == b"":
        items = items[:-1]
    if len(items) % 2:
        raise MalformedFrameError("Request headers are not name/value pairs")
    headers = {
        items[i].decode("latin-1"): items[i + 1].decode("latin-1")
        for i in range(0, len(items), 2)
    }
    if headers.get("SCGI") != SCGI_VERSION:
        raise MalformedFrameError(f"Unsupported SCGI version {headers.get('SCGI')!r}")
    try:
        length = int(headers["CONTENT_LENGTH"])
    except (KeyError, ValueError):
        raise MalformedFrameError("Request has no valid CONTENT_LENGTH header")

    body = data[start + size + 1:]
    if len(body) < length:
        raise IncompleteFrameError(f"Expected {length} body bytes, received {len(body)}")
    if len(body) > length:
        raise MalformedFrameError(f"CONTENT_LENGTH is {length} but body has {len(body)} bytes")
    return headers, body


def request_length(data: bytes) -> Optional[int]:
    """Total size of the SCGI request in ``data``, or None while headers are incomplete."""
    match = _NETSTRING_PREFIX.match(data)
    if match is None:
        return None
    start = match.end()
    size = int(match.group(1))
    if len(data) < start + size + 1:
        return None
    items = data[start:start + size].split(b"\0")
    for i in range(0, len(items) - 1, 2):
        if items[i] == b"CONTENT_LENGTH":
            try:
                return start + size + 1 + int(items[i + 1])
            except ValueError:
                return None
    return None


def decode_request(data: bytes) -> RemoteCall:
    """Decode an SCGI request back into the RemoteCall it carries."""
    _, body = _split_request(data)
    root = _parse_xml(body, "methodCall")
    name = root.find("methodName")
    if name is None or not (name.text or "").strip():
        raise MalformedFrameError("methodCall has no methodName")
    return RemoteCall(name.text.strip(), tuple(_param_values(root, extended=True)))


def _frame_response(body: str) -> bytes:
    payload = body.encode("utf-8")
    header = (
        "Status: 200 OK\r\n"
        "Content-Type: text/xml\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "\r\n"
    ).encode("ascii")
    return header + payload


def _response_document(inner: str) -> str:
    return f"<?xml version=\"1.0\"?>\n<methodResponse>\n{inner}</methodResponse>\n"


def encode_response(result: Union[Value, Fault]) -> bytes:
    """Encode a single result value, or a fault, the way rTorrent answers."""
    if isinstance(result, Fault):
        inner = _marshal(client.Fault(result.code, result.message))
    else:
        inner = _marshal((result,))
    return _frame_response(_response_document(inner))


def encode_multicall_response(results: Iterable[RemoteResponse]) -> bytes:
    """Encode per-sub-call outcomes as a system.multicall answer."""
    entries = []
    for response in results:
        if response.is_fault:
            entries.append({"faultCode": response.fault.code, "faultString": response.fault.message})
        else:
            entries.append(list(response.values))
    return _frame_response(_response_document(_marshal((entries,))))
