"""
orca models / orca droids - What can run a shard.
"""

from orca.agents.catalog import DROID_FOR_KIND, DROIDS_DIR, all_models, list_droids
from orca.lib.config import OrcaConfig
from orca.lib.constants import EXIT_SUCCESS


def cmd_models(args, config: OrcaConfig) -> int:
    for model in all_models():
        marker = "*" if model.id == config.droids.model else " "
        provider = f" ({model.provider})" if model.provider else ""
        print(f" {marker} {model.id:<40} {model.display_name}{provider}")
    return EXIT_SUCCESS


def cmd_droids(args, config: OrcaConfig) -> int:
    installed = list_droids()
    if not installed:
        print(f"No droids found in {DROIDS_DIR}")
    for name in installed:
        print(f"  {name}")

    print()
    print("Shard kinds:")
    for kind, droid in DROID_FOR_KIND.items():
        status = "" if droid in installed else "  (not installed)"
        print(f"  {kind.value:<10} -> {droid}{status}")
    return EXIT_SUCCESS
