import pytest
import torch

from charlm import CharLM, ModelConfig, Vocabulary


@pytest.fixture
def vocab():
    return Vocabulary.build(["ab", "ba"])


@pytest.fixture
def tiny_model(vocab):
    torch.manual_seed(0)
    return CharLM(vocab, ModelConfig(embedding_size=4, hidden_size=8))
