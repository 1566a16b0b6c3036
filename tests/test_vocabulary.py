import pytest
import torch

from charlm import ETX, UNK, InvalidInputError, OutOfRangeError, Vocabulary


def test_size_counts_sentinels():
    vocab = Vocabulary.build(["ab", "ba"])
    assert vocab.size() == 4
    assert len(vocab) == 4
    assert vocab.char_of(vocab.unk_id) == UNK
    assert vocab.char_of(vocab.etx_id) == ETX


def test_ids_follow_insertion_order():
    vocab = Vocabulary.build(["hello", "world"])
    assert vocab.characters[:-2] == tuple("helowrd")
    assert vocab.size() == 7 + 2
    assert [vocab.id_of(c) for c in "hel"] == [0, 1, 2]


def test_unknown_chars_map_to_unk():
    vocab = Vocabulary.build(["abc"])
    assert vocab.id_of("z") == vocab.id_of(UNK)
    assert vocab.id_of("é") == vocab.unk_id


def test_char_of_out_of_range():
    vocab = Vocabulary.build(["abc"])
    with pytest.raises(OutOfRangeError):
        vocab.char_of(len(vocab))
    with pytest.raises(OutOfRangeError):
        vocab.char_of(-1)


@pytest.mark.parametrize("glyph", [UNK, ETX])
def test_build_rejects_sentinels(glyph):
    with pytest.raises(InvalidInputError):
        Vocabulary.build(["ok", f"a{glyph}b"])


def test_index_and_read():
    vocab = Vocabulary.build(["abc"])
    ids = vocab.index("cab")
    assert ids.dtype == torch.long
    assert ids.tolist() == [2, 0, 1]
    assert vocab.read(ids) == "cab"


def test_dict_round_trip():
    vocab = Vocabulary.build(["xyz", "zyx!"])
    assert Vocabulary.from_dict(vocab.to_dict()) == vocab


def test_sentinels_must_close_the_vocabulary():
    with pytest.raises(InvalidInputError):
        Vocabulary(["a", ETX, UNK])
