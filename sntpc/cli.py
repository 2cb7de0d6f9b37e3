#!/usr/bin/env python3
"""
SNTPC CLI - Query a time server once and report delay and offset.
"""

import logging
import sys
from dataclasses import asdict

import click

from . import DEFAULT_SERVER, DEFAULT_TIMEOUT, DEFAULT_VERSION, NTP_PORT
from .client import query_sync
from .errors import SNTPError
from .header import Version
from .timestamp import format_instant

CHECK_LABELS = {
    "originate_matches": "Originate timestamp in reply matches transmit in request",
    "server_mode": "Reply mode is server",
    "stratum_nonzero": "Stratum is not zero (kiss of death)",
    "transmit_present": "Transmit timestamp is present",
    "clock_synchronized": "Leap indicator is not alarm (server clock synchronized)",
    "delay_positive": "Round-trip delay is greater than zero",
}


def format_offset(offset_ms: float) -> str:
    """Format an offset with sign and a hint of direction."""
    if offset_ms == 0:
        return f"{offset_ms:+.3f} ms (local clock in sync with server)"
    direction = "behind" if offset_ms > 0 else "ahead of"
    return f"{offset_ms:+.3f} ms (local clock {direction} server)"


@click.command()
@click.argument(
    "server",
    type=str,
    default=DEFAULT_SERVER,
    envvar="SNTPC_SERVER",
)
@click.option(
    "-p", "--port",
    type=click.IntRange(1, 65535),
    default=NTP_PORT,
    help=f"Server UDP port (default: {NTP_PORT})",
)
@click.option(
    "-t", "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_TIMEOUT,
    help=f"Seconds to wait for the reply (default: {DEFAULT_TIMEOUT})",
)
@click.option(
    "--ntp-version",
    type=click.IntRange(1, 7),
    default=DEFAULT_VERSION,
    help=f"Protocol version in the request (default: {DEFAULT_VERSION})",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Debug logging and full packet dumps",
)
def main(server: str, port: int, timeout: float, ntp_version: int, verbose: bool):
    """
    Send one SNTP request to SERVER and print the clock offset.

    Examples:

        sntpc                          # Query pool.ntp.org

        sntpc time.google.com -t 2     # Two second deadline

        sntpc 192.168.1.1 -v           # Dump both packets
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        result = query_sync(server, port=port, timeout=timeout, version=Version(ntp_version))
    except KeyboardInterrupt:
        click.echo("\nStopped.")
        sys.exit(1)
    except SNTPError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if verbose:
        click.echo(f"Sent packet to {result.peer[0]}:{result.peer[1]}")
        click.echo(result.request.describe())
        click.echo()
        click.echo("Received packet")
        click.echo(result.response.describe())
        click.echo()

    click.echo(f"Server:          {server} ({result.peer[0]})")
    click.echo(f"Server time:     {format_instant(result.response.transmit_timestamp)}")
    click.echo(f"Stratum:         {result.response.stratum} ({result.response.reference_id_text()})")
    click.echo(f"Roundtrip delay: {result.delay_ms:.3f} ms")
    click.echo(f"Clock offset:    {format_offset(result.offset_ms)}")

    click.echo("\nSanity checks:")
    for name, passed in asdict(result.checks).items():
        mark = "✓" if passed else "✗"
        click.echo(f"  {mark} {CHECK_LABELS[name]}")


if __name__ == "__main__":
    main()
