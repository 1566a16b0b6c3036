"""
Loss helpers for next-character prediction.

The classifier already outputs probabilities (softmax), so the loss is taken
directly on them with a clamped log instead of ``nn.CrossEntropyLoss``.
"""

import torch

EPSILON = 1e-8


def safe_log(x: torch.Tensor, eps: float = EPSILON) -> torch.Tensor:
    """Log of ``x`` with values below ``eps`` clamped, so it never returns -inf."""
    return torch.log(x.clamp_min(eps))


def cross_entropy(probs: torch.Tensor, targets: torch.Tensor, eps: float = EPSILON) -> torch.Tensor:
    """
    Per-position negative log-probability of the target ids.

    Args:
        probs: Probabilities, shape (T, V)
        targets: Target ids, shape (T,)

    Returns:
        Losses, shape (T,)
    """
    picked = probs.gather(-1, targets.unsqueeze(-1)).squeeze(-1)
    return -safe_log(picked, eps)
