"""
Phonetic encoding of name tokens

Double metaphone primary codes, truncated to the codec's maximum code
length (4 by default), so that sound-alike names share identical codes.
Codes agree with the commons-codec DoubleMetaphone: it encodes C-cedilla
as S and N-tilde as N, and reads a bare four-letter JOSE as Spanish (H).
"""

from functools import lru_cache

import phonetics

# Letters dmetaphone drops but commons-codec encodes
_LETTER_EQUIVALENTS = str.maketrans({'Ç': 'S', 'Ñ': 'N'})


class PhoneticEncoder:
    """Encodes names into space-separated double metaphone primary codes"""

    def __init__(self, max_code_length: int = 4):
        self.max_code_length = max_code_length
        self._encode_token = lru_cache(maxsize=50000)(self._primary_code)

    def _primary_code(self, token: str) -> str:
        word = token.upper().translate(_LETTER_EQUIVALENTS)
        primary = phonetics.dmetaphone(word)[0] or ''
        if word == 'JOSE' and primary.startswith('J'):
            primary = 'H' + primary[1:]
        return primary[:self.max_code_length]

    def encode_token(self, token: str) -> str:
        """Primary double metaphone code of a single whitespace-free token"""
        if not token:
            return ''
        return self._encode_token(token)

    def encode(self, name: str) -> str:
        """Encode every whitespace-separated token of a name part"""
        if not name:
            return ''
        codes = [self.encode_token(part) for part in name.split()]
        return ' '.join(code for code in codes if code)
