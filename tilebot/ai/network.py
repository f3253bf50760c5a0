"""
Value Networks
==============

Neural networks that approximate Q-values for the four tilt directions.

Theory:
    Q-Learning aims to learn Q(s, a) = expected future reward
    We use a neural network to approximate this function

    Input:  One-hot encoded board (17 channels x 4 x 4, flattened)
    Output: Q-value for each direction (UP, DOWN, LEFT, RIGHT)

The network learns by minimizing TD (Temporal Difference) error:
    Loss = (Q(s,a) - (r + γ * max_a' Q_target(s', a')))²

Architectures:
    ConvDQN - 2x2 convolutions over the board, then a dense head (default)
    DQN     - Plain fully connected network over the flat encoding
"""

import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import List, Optional, Callable, Dict, Any, Union, cast

import sys
sys.path.append('../..')
from config import Config, GRID_SIZE


def _activation_from_config(config: Config) -> Callable[..., Any]:
    """Get the activation function based on config."""
    activation_map: Dict[str, Callable[..., Any]] = {
        'relu': F.relu,
        'leaky_relu': F.leaky_relu,
        'tanh': torch.tanh,
        'elu': F.elu,
    }
    return cast(Callable[..., Any], activation_map.get(config.ACTIVATION, F.relu))


class DQN(nn.Module):
    """
    Fully connected Deep Q-Network.

    Architecture:
        Input Layer → Hidden Layers → Output Layer

    Example:
        >>> config = Config(NETWORK_TYPE='mlp')
        >>> net = DQN(state_size=272, action_size=4, config=config)
        >>> q_values = net(torch.zeros(1, 272))  # Shape: (1, 4)
    """

    def __init__(
        self,
        state_size: int,
        action_size: int,
        config: Optional[Config] = None,
        hidden_layers: Optional[List[int]] = None
    ):
        """
        Initialize the DQN.

        Args:
            state_size: Dimension of state input
            action_size: Number of possible actions (output dimension)
            config: Configuration object
            hidden_layers: Override config's hidden layer sizes
        """
        super(DQN, self).__init__()

        self.config = config or Config()
        self.state_size = state_size
        self.action_size = action_size
        self.hidden_sizes = hidden_layers or self.config.HIDDEN_LAYERS

        self._activation_fn = _activation_from_config(self.config)

        layer_sizes = [self.state_size] + list(self.hidden_sizes) + [self.action_size]
        self.layers = nn.ModuleList(
            nn.Linear(layer_sizes[i], layer_sizes[i + 1])
            for i in range(len(layer_sizes) - 1)
        )
        self._init_weights()

    def _init_weights(self) -> None:
        """Xavier/Glorot initialization for training stability."""
        for layer in self.layers:
            nn.init.xavier_uniform_(layer.weight)
            nn.init.constant_(layer.bias, 0.0)

    def forward(self, state: torch.Tensor) -> torch.Tensor:
        """
        Forward pass through the network.

        Args:
            state: Input state tensor of shape (batch_size, state_size)

        Returns:
            Q-values tensor of shape (batch_size, action_size)
        """
        x = state
        for layer in self.layers[:-1]:
            x = self._activation_fn(layer(x))
        # Output layer (no activation - raw Q-values)
        return self.layers[-1](x)

    def count_parameters(self) -> int:
        """Return total number of trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)


class ConvDQN(nn.Module):
    """
    Convolutional Deep Q-Network over the one-hot board.

    Architecture (defaults):
        (17, 4, 4) → Conv 2x2 (32) → Conv 2x2 (64) → Flatten (1024)
                   → Dense 256 → Dense 4

    Convolutions use "same" padding, so every feature map keeps the 4x4
    board shape. The flat state vector is reshaped to (channels, rows, cols)
    inside forward(), so the agent and replay memory only ever see vectors.
    """

    def __init__(
        self,
        state_size: int,
        action_size: int,
        config: Optional[Config] = None,
        conv_filters: Optional[List[int]] = None,
        hidden_layers: Optional[List[int]] = None
    ):
        super(ConvDQN, self).__init__()

        self.config = config or Config()
        self.state_size = state_size
        self.action_size = action_size
        self.in_channels = state_size // (GRID_SIZE * GRID_SIZE)
        assert self.in_channels * GRID_SIZE * GRID_SIZE == state_size, \
            "State size must be a whole number of board channels"

        self.conv_filters = conv_filters or self.config.CONV_FILTERS
        self.hidden_sizes = hidden_layers or self.config.HIDDEN_LAYERS
        self._activation_fn = _activation_from_config(self.config)

        channels = [self.in_channels] + list(self.conv_filters)
        self.convs = nn.ModuleList(
            nn.Conv2d(channels[i], channels[i + 1], kernel_size=2, padding='same')
            for i in range(len(channels) - 1)
        )

        self.flat_size = channels[-1] * GRID_SIZE * GRID_SIZE

        layer_sizes = [self.flat_size] + list(self.hidden_sizes) + [self.action_size]
        self.layers = nn.ModuleList(
            nn.Linear(layer_sizes[i], layer_sizes[i + 1])
            for i in range(len(layer_sizes) - 1)
        )
        self._init_weights()

    def _init_weights(self) -> None:
        for module in list(self.convs) + list(self.layers):
            nn.init.xavier_uniform_(module.weight)
            nn.init.constant_(module.bias, 0.0)

    def forward(self, state: torch.Tensor) -> torch.Tensor:
        """
        Args:
            state: Flat (batch_size, state_size) or shaped
                (batch_size, channels, rows, cols) input

        Returns:
            Q-values tensor of shape (batch_size, action_size)
        """
        x = state.reshape(-1, self.in_channels, GRID_SIZE, GRID_SIZE)
        for conv in self.convs:
            x = self._activation_fn(conv(x))
        x = x.flatten(start_dim=1)
        for layer in self.layers[:-1]:
            x = self._activation_fn(layer(x))
        return self.layers[-1](x)

    def count_parameters(self) -> int:
        return sum(p.numel() for p in self.parameters() if p.requires_grad)


ValueNetwork = Union[DQN, ConvDQN]


def build_network(state_size: int, action_size: int, config: Optional[Config] = None) -> ValueNetwork:
    """Create the network selected by ``config.NETWORK_TYPE``."""
    config = config or Config()
    if config.NETWORK_TYPE == 'mlp':
        return DQN(state_size, action_size, config)
    return ConvDQN(state_size, action_size, config)
