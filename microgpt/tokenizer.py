"""
Character-Level Tokenizer

The model works on individual characters. The vocabulary is the sorted set of
distinct characters found in the training documents plus one reserved token,
BOS ("beginning of sequence"), which marks both the start and the end of
every document:

    "emma"  ->  [BOS, e, m, m, a, BOS]

Sorting matters: token ids decide which rows of the embedding matrices a
character uses, and the vocabulary size decides how many random numbers are
drawn when the model is initialized. A canonical order keeps both stable from
run to run.

Classes:
    CharTokenizer: Build, encode and decode
"""

from typing import Dict, Iterable, List, Sequence


class CharTokenizer:
    """
    Bijection between corpus characters and small integer ids.

    Ids ``0 .. vocab_size - 2`` are the sorted characters; id
    ``vocab_size - 1`` is the BOS marker.

    Attributes:
        chars: Sorted distinct characters
        char_to_id: Dict mapping characters to ids
        bos_id: Id of the start/end marker
        vocab_size: Number of ids including the marker

    Example:
        >>> tokenizer = CharTokenizer.from_documents(["ann", "amy"])
        >>> tokenizer.chars
        ['a', 'm', 'n', 'y']
        >>> tokenizer.encode("any")
        [4, 0, 2, 3, 4]
        >>> tokenizer.decode([4, 0, 2, 3, 4])
        'any'
    """

    BOS_DISPLAY = "<BOS>"
    UNKNOWN_DISPLAY = "?"

    def __init__(self, chars: Sequence[str]):
        """
        Initialize from an already sorted, duplicate-free character list.

        Use ``from_documents`` to build the vocabulary from a corpus.

        Args:
            chars: Distinct single characters in id order

        Raises:
            ValueError: If chars is empty or contains duplicates
        """
        if not chars:
            raise ValueError("Tokenizer vocabulary is empty: corpus has no characters")
        if len(set(chars)) != len(chars):
            raise ValueError("Tokenizer characters must be distinct")

        self.chars: List[str] = list(chars)
        self.char_to_id: Dict[str, int] = {ch: i for i, ch in enumerate(self.chars)}
        self.bos_id: int = len(self.chars)
        self.vocab_size: int = len(self.chars) + 1

    @classmethod
    def from_documents(cls, documents: Iterable[str]) -> "CharTokenizer":
        """
        Build the vocabulary from a corpus.

        Args:
            documents: Training documents

        Returns:
            Tokenizer over the sorted distinct characters

        Raises:
            ValueError: If the corpus is empty or contains no characters
        """
        charset = set()
        for document in documents:
            charset.update(document)
        return cls(sorted(charset))

    def encode(self, text: str) -> List[int]:
        """
        Convert a document to ids, wrapped in BOS markers.

        Args:
            text: Document to encode

        Returns:
            ``[bos_id, id(text[0]), ..., id(text[-1]), bos_id]``

        Raises:
            ValueError: If text contains a character outside the vocabulary
        """
        token_ids = [self.bos_id]
        for ch in text:
            if ch not in self.char_to_id:
                raise ValueError(f"Character {ch!r} is not in the vocabulary")
            token_ids.append(self.char_to_id[ch])
        token_ids.append(self.bos_id)
        return token_ids

    def decode(self, token_ids: Iterable[int]) -> str:
        """
        Convert ids back to text, dropping BOS markers.

        Args:
            token_ids: Ids produced by ``encode`` or by the model

        Returns:
            The decoded string
        """
        return "".join(self.chars[i] for i in token_ids if i != self.bos_id)

    def token_to_char(self, token_id: int) -> str:
        """
        Human-readable label for an id, for display purposes.

        Args:
            token_id: Any integer

        Returns:
            The character, ``"<BOS>"`` for the marker or ``"?"`` if unknown
        """
        if token_id == self.bos_id:
            return self.BOS_DISPLAY
        if 0 <= token_id < len(self.chars):
            return self.chars[token_id]
        return self.UNKNOWN_DISPLAY

    def char_to_token(self, ch: str) -> int:
        """
        Id of a single character.

        Raises:
            ValueError: If ch is not in the vocabulary
        """
        if ch not in self.char_to_id:
            raise ValueError(f"Character {ch!r} is not in the vocabulary")
        return self.char_to_id[ch]

    def __len__(self) -> int:
        return self.vocab_size

    def __repr__(self) -> str:
        return f"CharTokenizer(vocab_size={self.vocab_size}, chars={''.join(self.chars)!r})"
