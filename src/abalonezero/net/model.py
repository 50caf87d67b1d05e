"""
Policy/value network for Abalone.

The architecture follows AlphaZero:
- Input projection layer
- Residual tower (configurable depth)
- Policy head (one logit per action-table entry)
- Value head (scalar in [-1, 1])

The hexagonal board lives in an 11x11 array, so trunk activations are
multiplied by the playable-cell mask after every block to keep the
off-board frame from leaking features into the convolutions.
"""

from __future__ import annotations

from typing import Optional
import torch
import torch.nn as nn
import torch.nn.functional as F

from ..game.board import ON_BOARD
from ..game.encoding import ABALONE_SPEC, GameSpec


class ConvBlock(nn.Module):
    """Convolutional block: Conv -> BatchNorm -> ReLU."""

    def __init__(self, in_channels: int, out_channels: int, kernel_size: int = 3):
        super().__init__()
        self.conv = nn.Conv2d(
            in_channels,
            out_channels,
            kernel_size=kernel_size,
            padding=kernel_size // 2,
            bias=False,
        )
        self.bn = nn.BatchNorm2d(out_channels)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return F.relu(self.bn(self.conv(x)))


class ResBlock(nn.Module):
    """Residual block: Conv -> BN -> ReLU -> Conv -> BN + skip -> ReLU."""

    def __init__(self, channels: int):
        super().__init__()
        self.conv1 = nn.Conv2d(channels, channels, kernel_size=3, padding=1, bias=False)
        self.bn1 = nn.BatchNorm2d(channels)
        self.conv2 = nn.Conv2d(channels, channels, kernel_size=3, padding=1, bias=False)
        self.bn2 = nn.BatchNorm2d(channels)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out = F.relu(self.bn1(self.conv1(x)))
        out = self.bn2(self.conv2(out))
        return F.relu(out + x)


class PolicyHead(nn.Module):
    """Conv 1x1 -> BN -> ReLU -> Flatten -> FC over the action table."""

    def __init__(self, in_channels: int, spec: GameSpec, hidden_channels: int = 16):
        super().__init__()
        self.conv = nn.Conv2d(in_channels, hidden_channels, kernel_size=1, bias=False)
        self.bn = nn.BatchNorm2d(hidden_channels)
        self.fc = nn.Linear(hidden_channels * spec.board_size, spec.num_actions)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out = F.relu(self.bn(self.conv(x)))
        return self.fc(out.flatten(1))


class ValueHead(nn.Module):
    """Conv 1x1 -> BN -> ReLU -> FC -> ReLU -> FC -> Tanh."""

    def __init__(
        self,
        in_channels: int,
        spec: GameSpec,
        hidden_channels: int = 8,
        hidden_size: int = 128,
    ):
        super().__init__()
        self.conv = nn.Conv2d(in_channels, hidden_channels, kernel_size=1, bias=False)
        self.bn = nn.BatchNorm2d(hidden_channels)
        self.fc1 = nn.Linear(hidden_channels * spec.board_size, hidden_size)
        self.fc2 = nn.Linear(hidden_size, 1)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        out = F.relu(self.bn(self.conv(x)))
        out = F.relu(self.fc1(out.flatten(1)))
        return torch.tanh(self.fc2(out))


class AbaloneNet(nn.Module):
    """
    Residual policy/value network over the padded hex board.

    Args:
        num_channels: Number of channels in residual tower
        num_blocks: Number of residual blocks
        spec: Board/action description (defaults to ABALONE_SPEC)
    """

    def __init__(
        self,
        num_channels: int = 64,
        num_blocks: int = 6,
        spec: GameSpec = ABALONE_SPEC,
    ):
        super().__init__()

        self.spec = spec
        self.num_channels = num_channels
        self.num_blocks = num_blocks

        self.register_buffer(
            "board_mask",
            torch.from_numpy(ON_BOARD.astype("float32")).view(1, 1, *spec.board_shape),
        )

        self.input_conv = ConvBlock(spec.num_input_channels, num_channels)
        self.res_blocks = nn.ModuleList([
            ResBlock(num_channels) for _ in range(num_blocks)
        ])
        self.policy_head = PolicyHead(num_channels, spec)
        self.value_head = ValueHead(num_channels, spec)

    def forward(self, x: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """
        Args:
            x: Input tensor of shape (batch, 5, 11, 11)

        Returns:
            policy_logits: Shape (batch, num_actions)
            value: Shape (batch, 1)
        """
        out = self.input_conv(x) * self.board_mask
        for block in self.res_blocks:
            out = block(out) * self.board_mask

        return self.policy_head(out), self.value_head(out)

    def predict(
        self,
        x: torch.Tensor,
        mask: Optional[torch.Tensor] = None,
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """
        Predict with optional action masking.

        Args:
            x: Input tensor
            mask: Optional boolean mask of shape (batch, num_actions)

        Returns:
            policy: Probability distribution (batch, num_actions)
            value: Value prediction (batch, 1)
        """
        policy_logits, value = self(x)

        if mask is not None:
            policy_logits = policy_logits.masked_fill(~mask, float("-inf"))

        return F.softmax(policy_logits, dim=-1), value

    def freeze(self) -> AbaloneNet:
        """Switch to inference mode and detach all parameters from autograd."""
        self.eval()
        for param in self.parameters():
            param.requires_grad_(False)
        return self


def create_model(
    num_channels: int = 64,
    num_blocks: int = 6,
    device: Optional[torch.device] = None,
) -> AbaloneNet:
    """Create a new, randomly initialised AbaloneNet."""
    model = AbaloneNet(num_channels=num_channels, num_blocks=num_blocks)
    if device is not None:
        model = model.to(device)
    return model


def save_checkpoint(
    model: AbaloneNet,
    path: str,
    extra: Optional[dict] = None,
) -> None:
    """
    Save model weights with the hyper-parameters needed to rebuild it.

    Args:
        model: Model to save
        path: Save path
        extra: Extra data to include
    """
    checkpoint = {
        "model_state_dict": model.state_dict(),
        "num_actions": model.spec.num_actions,
        "num_input_channels": model.spec.num_input_channels,
        "num_channels": model.num_channels,
        "num_blocks": model.num_blocks,
    }
    if extra is not None:
        checkpoint.update(extra)

    torch.save(checkpoint, path)


def load_checkpoint(
    path: str,
    device: Optional[torch.device] = None,
) -> tuple[AbaloneNet, dict]:
    """
    Load a frozen model artifact.

    Raises:
        ValueError: if the checkpoint was built for a different action table
            or input encoding

    Returns:
        (model, checkpoint_dict) with the model frozen for inference
    """
    checkpoint = torch.load(path, map_location=device or "cpu", weights_only=False)

    if checkpoint.get("num_actions") != ABALONE_SPEC.num_actions:
        raise ValueError(
            f"Checkpoint has {checkpoint.get('num_actions')} actions, "
            f"expected {ABALONE_SPEC.num_actions}"
        )
    if checkpoint.get("num_input_channels") != ABALONE_SPEC.num_input_channels:
        raise ValueError(
            f"Checkpoint expects {checkpoint.get('num_input_channels')} input planes, "
            f"expected {ABALONE_SPEC.num_input_channels}"
        )

    model = AbaloneNet(
        num_channels=checkpoint.get("num_channels", 64),
        num_blocks=checkpoint.get("num_blocks", 6),
    )
    model.load_state_dict(checkpoint["model_state_dict"])

    if device is not None:
        model = model.to(device)

    return model.freeze(), checkpoint
