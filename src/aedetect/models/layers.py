"""Dense layer stacks shared by the autoencoder models."""

import torch.nn as nn

ACTIVATIONS = {
    "relu": nn.ReLU,
    "leaky_relu": nn.LeakyReLU,
    "elu": nn.ELU,
    "gelu": nn.GELU,
    "tanh": nn.Tanh,
    "sigmoid": nn.Sigmoid,
    "softplus": nn.Softplus,
    "identity": nn.Identity,
}


def get_activation(name: str) -> nn.Module:
    """Instantiate an activation module by name."""
    try:
        return ACTIVATIONS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown activation '{name}', expected one of {sorted(ACTIVATIONS)}"
        ) from None


def build_layer_stack(
    sizes: list[int],
    activation: str = "relu",
    layer: type[nn.Module] = nn.Linear,
) -> nn.Sequential:
    """Build a feed-forward stack mapping sizes[0] -> sizes[-1].

    Every layer except the last is followed by the activation; the last
    layer is linear so the output range is unconstrained.
    """
    if len(sizes) < 2:
        raise ValueError(f"Need at least two sizes to build a layer, got {sizes}")

    layers = []
    n_layers = len(sizes) - 1

    for i, (in_size, out_size) in enumerate(zip(sizes[:-1], sizes[1:])):
        layers.append(layer(in_size, out_size))

        if i < n_layers - 1:  # No activation on final layer
            layers.append(get_activation(activation))

    return nn.Sequential(*layers)


def init_weights(module: nn.Module) -> None:
    if isinstance(module, nn.Linear):
        nn.init.xavier_uniform_(module.weight)
        if module.bias is not None:
            nn.init.constant_(module.bias, 0)
