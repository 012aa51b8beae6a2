"""Address helpers shared by the poll and push sources.

IPv6 addresses are built from a delegated network prefix and a locally
configured interface identifier. The two are combined by adding each of
the 16 bytes modulo 256, without carrying into the neighbouring byte.
For a prefix whose host bytes are zero and an identifier whose network
bytes are zero this is the usual "prefix || suffix" address.
"""

import ipaddress
from typing import Optional, Union

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

IPV6_LENGTH = 16


def construct_address(
    prefix: Union[ipaddress.IPv6Address, ipaddress.IPv6Network],
    interface_id: ipaddress.IPv6Address,
) -> ipaddress.IPv6Address:
    """Combine a network prefix with an interface identifier.

    Args:
        prefix: Delegated prefix (network or its network address).
        interface_id: Local interface identifier.

    Returns:
        Address whose byte i is (prefix[i] + interface_id[i]) mod 256.
    """
    if isinstance(prefix, ipaddress.IPv6Network):
        prefix = prefix.network_address

    prefix_bytes = prefix.packed
    id_bytes = interface_id.packed

    constructed = bytes(
        (prefix_bytes[i] + id_bytes[i]) % 256 for i in range(IPV6_LENGTH)
    )
    return ipaddress.IPv6Address(constructed)


def is_ipv4(address: Address) -> bool:
    """Whether the address belongs to the IPv4 family."""
    return address.version == 4


def parse_ipv4(value: Optional[str]) -> Optional[ipaddress.IPv4Address]:
    """Parse an IPv4 address, unwrapping IPv4-mapped IPv6 notation.

    Returns:
        The address, or None if the value is empty or not IPv4.
    """
    if not value:
        return None
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None

    if isinstance(address, ipaddress.IPv6Address):
        return address.ipv4_mapped
    return address


def parse_ipv6(value: Optional[str]) -> Optional[ipaddress.IPv6Address]:
    """Parse an IPv6 address that is not an IPv4-mapped address.

    Returns:
        The address, or None if the value is empty or not plain IPv6.
    """
    if not value:
        return None
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None

    if not isinstance(address, ipaddress.IPv6Address):
        return None
    if address.ipv4_mapped is not None:
        return None
    return address


def parse_prefix(value: Optional[str]) -> ipaddress.IPv6Network:
    """Parse an IPv6 prefix in CIDR notation, masking any host bits.

    Raises:
        ValueError: If the value is missing, malformed or not IPv6.
    """
    if not value:
        raise ValueError("missing prefix")
    if "/" not in value:
        raise ValueError(f"{value} has no prefix length")

    network = ipaddress.ip_network(value.strip(), strict=False)
    if not isinstance(network, ipaddress.IPv6Network):
        raise ValueError(f"{value} is not an IPv6 prefix")
    return network
