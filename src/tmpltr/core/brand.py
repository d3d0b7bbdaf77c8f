"""Brand data: raw brand.toml tables handed to templates as ``data.brand``"""

from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel

from tmpltr.core.content import parse_toml
from tmpltr.errors import BrandError, TomlParseError


BRAND_FILE = "brand.toml"
FONTS_DIR = "fonts"


class Brand(BaseModel):
    id: str
    root: Path
    data: dict[str, Any]
    font_paths: list[Path] = []


def _brand_file(brand: str, brands_dir: Path) -> Path:
    """A brand id under brands_dir, a brand directory, or a brand.toml path."""
    direct = Path(brand).expanduser()
    if direct.is_file():
        return direct
    if direct.is_dir():
        return direct / BRAND_FILE
    return Path(brands_dir) / brand / BRAND_FILE


def load_brand(brand: str, brands_dir: Path) -> Brand:
    path = _brand_file(brand, brands_dir)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise BrandError(f"brand '{brand}' not found (looked for {path})") from e
    except (OSError, UnicodeDecodeError) as e:
        raise BrandError(f"reading {path}: {e}") from e
    try:
        data = parse_toml(text).unwrap()
    except TomlParseError as e:
        raise BrandError(f"{path}: {e}") from e

    root = path.parent.resolve()
    brand_id = data.get("id") if isinstance(data.get("id"), str) else root.name
    data = {**data, "id": brand_id, "root": str(root)}

    font_paths = [root]
    if (root / FONTS_DIR).is_dir():
        font_paths.append(root / FONTS_DIR)
    logger.debug(f"brand: loaded {brand_id} from {path}")
    return Brand(id=brand_id, root=root, data=data, font_paths=font_paths)
