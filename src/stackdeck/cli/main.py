"""Entry point for the stackdeck command-line interface."""

import click

from stackdeck import __version__
from stackdeck.cli.commands.deploy import deploy


@click.group()
@click.version_option(version=__version__, prog_name="stackdeck")
def main() -> None:
    """StackDeck - Roll out multi-tier stacks in dependency order.

    Each tier is applied only after the tiers it depends on are ready, and
    the stack is bound to an ingress once every tier has converged.

    \b
    EXAMPLES:

        Show the rollout order:
            stackdeck deploy plan stack.yaml

        Deploy the stack:
            stackdeck deploy run stack.yaml
    """
    pass


main.add_command(deploy)


if __name__ == "__main__":  # pragma: no cover
    main()
