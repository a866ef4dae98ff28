"""
Article QR payload encoding and decoding.

The payload is a compact JSON object with four string fields:

    {"id": "42", "code": "CER-100", "name": "Ceramic Tile 30x30", "type": "article"}

`type` is the discriminator that lets a generic scanner tell article payloads
apart from payloads produced for other entity kinds.
"""
import json
from dataclasses import dataclass
from typing import Optional

from .exceptions import InvalidIdentity, InvalidPayload

ARTICLE_PAYLOAD_TYPE = 'article'

# Identity field -> serialized key
PAYLOAD_KEYS = {
    'id': 'id',
    'code': 'code',
    'designation': 'name',
}


@dataclass(frozen=True)
class ArticleIdentity:
    """Identity fields of a catalog article, as supplied by the CRUD layer"""
    id: str
    code: str
    designation: str = ''

    @classmethod
    def from_mapping(cls, data: dict) -> 'ArticleIdentity':
        """
        Build an identity from a catalog record or a decoded payload.

        Accepts both the catalog shape (id, codeArticle, designation) and the
        payload shape (id, code, name). Values are kept as given.
        """
        code = data.get('codeArticle', data.get('code'))
        designation = data.get('designation', data.get('name'))
        return cls(
            id=data.get('id'),
            code=code,
            designation='' if designation is None else designation,
        )


@dataclass(frozen=True)
class EncodedPayload:
    """Canonical payload text for one render request"""
    text: str
    article_id: str
    code: str
    designation: str
    type: str = ARTICLE_PAYLOAD_TYPE

    def as_dict(self) -> dict:
        return {
            PAYLOAD_KEYS['id']: self.article_id,
            PAYLOAD_KEYS['code']: self.code,
            PAYLOAD_KEYS['designation']: self.designation,
            'type': self.type,
        }

    @property
    def identity(self) -> ArticleIdentity:
        return ArticleIdentity(id=self.article_id, code=self.code, designation=self.designation)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value == '')


def encode(identity: ArticleIdentity) -> EncodedPayload:
    """
    Serialize an article identity into its QR payload.

    Same identity in, byte-identical text out: key order is fixed, separators
    are compact and non-ASCII characters are kept as-is (UTF-8 in the symbol).

    Raises:
        InvalidIdentity: if id or code is empty or missing
    """
    if identity is None:
        raise InvalidIdentity('Article identity is required')
    if _is_blank(identity.id):
        raise InvalidIdentity('Article id must not be empty')
    if _is_blank(identity.code):
        raise InvalidIdentity(f'Article code must not be empty (id: {identity.id})')
    # Scanners read every field back as a string
    if not isinstance(identity.id, str) or not isinstance(identity.code, str):
        raise InvalidIdentity(f'Article id and code must be strings (id: {identity.id!r}, code: {identity.code!r})')
    if identity.designation is not None and not isinstance(identity.designation, str):
        raise InvalidIdentity(f'Article designation must be a string (code: {identity.code})')

    designation = '' if identity.designation is None else identity.designation
    record = {
        PAYLOAD_KEYS['id']: identity.id,
        PAYLOAD_KEYS['code']: identity.code,
        PAYLOAD_KEYS['designation']: designation,
        'type': ARTICLE_PAYLOAD_TYPE,
    }
    text = json.dumps(record, separators=(',', ':'), ensure_ascii=False)
    return EncodedPayload(
        text=text,
        article_id=identity.id,
        code=identity.code,
        designation=designation,
    )


def decode_payload(text: str) -> dict:
    """
    Parse a scanned payload back into its record.

    Only the structure is checked here, not the discriminator value, so that
    payloads of any entity kind can be decoded.

    Raises:
        InvalidPayload: if the text is not a JSON object with string
            type, id, code and name fields
    """
    try:
        record = json.loads(text)
    except (TypeError, ValueError) as e:
        raise InvalidPayload(f'Scanned payload is not valid JSON: {str(e)}') from e

    if not isinstance(record, dict):
        raise InvalidPayload('Scanned payload must be a JSON object')

    for key in ('type', 'id', 'code', 'name'):
        if not isinstance(record.get(key), str):
            raise InvalidPayload(f"Scanned payload field '{key}' is missing or not a string")

    return record


def parse_scanned_article(text: str) -> Optional[ArticleIdentity]:
    """
    Resolve scanner input to an article identity.

    Returns None when the payload belongs to another entity kind.
    """
    record = decode_payload(text)
    if record['type'] != ARTICLE_PAYLOAD_TYPE:
        return None
    return ArticleIdentity.from_mapping(record)
