from typing import Dict, List, Optional

PUBLIC_ADDRESS = "93.184.216.34"


def make_resolver(addresses: Dict[str, List[str]], default: Optional[List[str]] = None):
    """Fake DNS resolver: hostname -> addresses, `default` for anything else."""

    async def resolve(hostname: str) -> List[str]:
        if hostname in addresses:
            return addresses[hostname]
        if default is None:
            raise OSError(f"Name or service not known: {hostname}")
        return default

    return resolve
