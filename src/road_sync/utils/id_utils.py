import secrets
import string


ID_ALPHABET = string.ascii_letters + string.digits + "_-"

# Ward prefix mapping for road asset ids
WARD_PREFIX = {
    "Naka-ku": "NAKA",
    "Nakamura-ku": "NKMR",
    "Higashi-ku": "HIGA",
    "Kita-ku": "KITA",
    "Nishi-ku": "NISH",
    "Chikusa-ku": "CHIK",
    "Showa-ku": "SHOW",
    "Mizuho-ku": "MIZH",
    "Atsuta-ku": "ATSU",
    "Nakagawa-ku": "NKGW",
    "Minato-ku": "MINA",
    "Minami-ku": "MNMI",
    "Moriyama-ku": "MORY",
    "Midori-ku": "MIDR",
    "Meito-ku": "MEIT",
    "Tempaku-ku": "TEMP",
}


def random_token(length: int) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def get_ward_prefix(ward_name: str) -> str:
    return WARD_PREFIX.get(ward_name, "UNK")


def generate_road_asset_id(ward_name: str) -> str:
    """Road asset id of the form ``RA-<WARD>-<8 chars>``."""
    return f"RA-{get_ward_prefix(ward_name)}-{random_token(8)}"


def generate_sync_run_id() -> str:
    return f"OSL-{random_token(10)}"
