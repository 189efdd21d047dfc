"""
Console reporting helpers shared by the CLI and the codec modules.

Licensed under the MIT License
"""

from rich.console import Console

from . import __version__

# Rich console for styled output
console = Console()


def print_banner():
    """Display tool banner with version info."""
    banner_text = f"""
================================================================
          D-Link M32 Firmware Utility v{__version__}
================================================================
    """
    console.print(banner_text, style="bold cyan")
    console.print("Recovery / factory image converter for D-Link AQUILA and EAGLE PRO AI devices", style="dim")
    console.print("Supports: partition header repair, AES-128-CBC, RSA-2048/SHA-512\n", style="dim")


def print_success(message: str):
    """Print success message in green."""
    console.print(f"✓ {message}", style="bold green")


def print_error(message: str):
    """Print error message in red."""
    console.print(f"✗ {message}", style="bold red")


def print_info(message: str):
    """Print info message in blue."""
    console.print(f"ℹ {message}", style="blue")


def print_warning(message: str):
    """Print warning message in yellow."""
    console.print(f"⚠ {message}", style="yellow")
