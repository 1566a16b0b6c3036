import json
import math

import pytest
import torch

from charlm import CharLM, CharLMTrainer, ConfigurationError, ETX, ModelConfig, TrainerConfig, Vocabulary


def make_trainer(tmp_path, sentences, vocab=None, **kw):
    vocab = vocab or Vocabulary.build(["ab", "ba"])
    torch.manual_seed(0)
    model = CharLM(vocab, ModelConfig(embedding_size=4, hidden_size=8))
    cfg = TrainerConfig(outdir=str(tmp_path), use_cpu=True, verbose=False, **kw)
    return CharLMTrainer(model, sentences, cfg=cfg)


def test_two_char_sentence_batch_one(tmp_path, monkeypatch):
    trainer = make_trainer(tmp_path, ["ab"], batch_size=1)
    steps = []
    original_step = trainer.optimizer.step
    monkeypatch.setattr(trainer.optimizer, "step", lambda *a, **k: steps.append(1) or original_step(*a, **k))

    trainer.run()

    assert trainer.state.windows == 2
    assert trainer.state.updates == 1
    assert len(steps) == 1
    assert trainer.state.sentences == 1


def test_state_is_carried_between_windows(tmp_path, monkeypatch):
    trainer = make_trainer(tmp_path, ["abab"], batch_size=2)
    seen = []
    forward = trainer.model.forward

    def spy(ids, state=None):
        seen.append(state)
        return forward(ids, state)

    monkeypatch.setattr(trainer.model, "forward", spy)
    trainer.run()

    assert seen[0] is None
    assert seen[1] is not None
    assert not seen[1][0].requires_grad


def test_sentinel_sentence_is_skipped(tmp_path):
    trainer = make_trainer(tmp_path, ["ab", f"a{ETX}b", "ba"])
    trainer.run()

    assert trainer.state.skipped == 1
    assert trainer.state.sentences == 2
    assert trainer.state.updates == 2


def test_other_errors_abort_training(tmp_path, monkeypatch):
    trainer = make_trainer(tmp_path, ["ab", "ba"])

    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(trainer.model, "forward", boom)
    with pytest.raises(RuntimeError):
        trainer.run()


def test_empty_sentences_are_ignored(tmp_path):
    trainer = make_trainer(tmp_path, ["", "ab", ""])
    trainer.run()
    assert trainer.state.sentences == 1
    assert trainer.state.skipped == 0


def test_checkpoint_only_on_strict_improvement(tmp_path):
    trainer = make_trainer(tmp_path, [])

    trainer.avg_loss.add(2.0)
    assert trainer.evaluate_and_save()
    assert trainer.model_path.exists()
    assert trainer.model.best_perplexity == pytest.approx(math.exp(2.0))

    trainer.model_path.unlink()
    assert not trainer.evaluate_and_save()      # tie
    assert not trainer.model_path.exists()

    trainer.avg_loss.add(4.0)                   # mean 3.0
    assert not trainer.evaluate_and_save()

    trainer.avg_loss.add(0.0)                   # mean 2.0, tie again
    assert not trainer.evaluate_and_save()

    trainer.avg_loss.add(0.0)                   # mean 1.5
    assert trainer.evaluate_and_save()
    assert CharLM.from_file(trainer.model_path).best_perplexity == pytest.approx(math.exp(1.5))


def test_checkpoints_every_hundred_sentences(tmp_path):
    trainer = make_trainer(tmp_path, ["ab", "ba"] * 50, epochs=2)
    trainer.run()

    assert trainer.state.sentences == 200
    assert trainer.state.updates == 200
    assert len(trainer.history) == 2
    assert trainer.model_path.exists()
    assert trainer.model.best_perplexity > 0.0

    history = json.loads((tmp_path / "history.json").read_text(encoding="utf-8"))
    assert [row["sentences"] for row in history] == [100, 200]
    config = json.loads((tmp_path / "config.json").read_text(encoding="utf-8"))
    assert config["model"]["hidden_size"] == 8
    assert (tmp_path / "charlm_last.pt").exists()


def test_parameters_change_after_a_sentence(tmp_path):
    trainer = make_trainer(tmp_path, ["abba"], update_method="radam", grad_clip=0.25, chars_dropout=0.5)
    before = [p.detach().clone() for p in trainer.model.parameters()]
    trainer.run()
    after = list(trainer.model.parameters())
    assert any(not torch.equal(a, b) for a, b in zip(before, after))


@pytest.mark.parametrize("kw", [
    {"epochs": 0}, {"batch_size": 0}, {"update_method": "sgd"}, {"chars_dropout": 1.0},
    {"grad_clip": 0.0}, {"grad_clip": -0.5}, {"window_size": 0},
])
def test_invalid_trainer_config(tmp_path, kw):
    with pytest.raises(ConfigurationError):
        make_trainer(tmp_path, ["ab"], **kw)


def test_chars_dropout_replaces_inputs_but_not_targets(tmp_path, monkeypatch):
    import charlm.trainer
    from charlm import to_batches

    trainer = make_trainer(tmp_path, ["abba"], batch_size=2, chars_dropout=0.999999)
    vocab = trainer.model.vocabulary
    inputs, targets = [], []
    forward = trainer.model.forward
    loss_fn = charlm.trainer.cross_entropy

    def spy_forward(ids, state=None):
        inputs.append(ids.clone())
        return forward(ids, state)

    def spy_loss(probs, y):
        targets.append(y.clone())
        return loss_fn(probs, y)

    monkeypatch.setattr(trainer.model, "forward", spy_forward)
    monkeypatch.setattr(charlm.trainer, "cross_entropy", spy_loss)
    trainer.run()

    assert len(inputs) == 2
    assert all(torch.all(ids == vocab.unk_id) for ids in inputs)
    expected = [vocab.index(b.targets) for b in to_batches("abba", 2)]
    assert all(torch.equal(y, e) for y, e in zip(targets, expected))
    assert targets[-1][-1].item() == vocab.etx_id


def test_blank_sentences_are_ignored(tmp_path):
    trainer = make_trainer(tmp_path, ["   ", "\t", "ab"])
    trainer.run()
    assert trainer.state.sentences == 1
    assert trainer.state.updates == 1
    assert trainer.state.skipped == 0
