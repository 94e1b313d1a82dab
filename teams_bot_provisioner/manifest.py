"""
Teams app package: manifest.json plus the two required icons, zipped for sideloading.
"""

import json
import logging
import zipfile
from pathlib import Path
from typing import Optional, Dict, Any
from urllib.parse import urlparse

from PIL import Image, ImageDraw, ImageFont

from .config import ManifestConfig
from .exceptions import ValidationError
from .models import validate_endpoint


MANIFEST_SCHEMA = "https://developer.microsoft.com/en-us/json-schemas/teams/v1.16/MicrosoftTeams.schema.json"
MANIFEST_VERSION = "1.16"

BOT_SCOPES = ["personal", "team", "groupChat"]
PERMISSIONS = ["identity", "messageTeamMembers"]

COLOR_ICON = "color.png"
OUTLINE_ICON = "outline.png"
COLOR_ICON_SIZE = 192
OUTLINE_ICON_SIZE = 32

logger = logging.getLogger(__name__)


def build_manifest(
    bot_name: str,
    app_id: str,
    branding: ManifestConfig,
    endpoint: Optional[str] = None,
) -> Dict[str, Any]:
    """Render the manifest document for a bot."""
    if not app_id:
        raise ValidationError("An application id is required to build the manifest", step="build manifest")

    valid_domains = []
    if endpoint:
        try:
            validate_endpoint(endpoint)
        except ValueError as e:
            raise ValidationError(str(e), step="build manifest") from e
        valid_domains.append(urlparse(endpoint).hostname)

    return {
        "$schema": MANIFEST_SCHEMA,
        "manifestVersion": MANIFEST_VERSION,
        "version": branding.app_version,
        "id": app_id,
        "developer": {
            "name": branding.developer_name,
            "websiteUrl": branding.website_url,
            "privacyUrl": branding.privacy_url,
            "termsOfUseUrl": branding.terms_of_use_url,
        },
        "icons": {"color": COLOR_ICON, "outline": OUTLINE_ICON},
        "name": {"short": bot_name[:30], "full": bot_name},
        "description": {
            "short": branding.short_description[:80],
            "full": branding.full_description or branding.short_description,
        },
        "accentColor": branding.accent_color,
        "bots": [
            {
                "botId": app_id,
                "scopes": list(BOT_SCOPES),
                "supportsFiles": False,
                "isNotificationOnly": False,
            }
        ],
        "permissions": list(PERMISSIONS),
        "validDomains": valid_domains,
    }


def _load_font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default()


def _draw_centered(draw: ImageDraw.ImageDraw, size: int, text: str, font, fill):
    bbox = draw.textbbox((0, 0), text, font=font)
    width = bbox[2] - bbox[0]
    height = bbox[3] - bbox[1]
    draw.text(((size - width) // 2 - bbox[0], (size - height) // 2 - bbox[1]), text, fill=fill, font=font)


def create_icons(directory: Path, bot_name: str, accent_color: str):
    """
    Write placeholder icons.

    The color icon is a full-bleed 192x192 tile in the accent color, the
    outline icon a 32x32 white glyph on a transparent background.
    """
    initial = bot_name[:1].upper()

    color = Image.new("RGBA", (COLOR_ICON_SIZE, COLOR_ICON_SIZE), accent_color)
    _draw_centered(ImageDraw.Draw(color), COLOR_ICON_SIZE, initial, _load_font(96), "white")
    color.save(directory / COLOR_ICON)

    outline = Image.new("RGBA", (OUTLINE_ICON_SIZE, OUTLINE_ICON_SIZE), (0, 0, 0, 0))
    draw = ImageDraw.Draw(outline)
    draw.ellipse([1, 1, OUTLINE_ICON_SIZE - 2, OUTLINE_ICON_SIZE - 2], outline="white", width=2)
    _draw_centered(draw, OUTLINE_ICON_SIZE, initial, _load_font(16), "white")
    outline.save(directory / OUTLINE_ICON)


def build_package(
    bot_name: str,
    app_id: str,
    branding: ManifestConfig,
    output_dir: str = ".",
    endpoint: Optional[str] = None,
) -> Path:
    """
    Write manifest and icons to ``<output_dir>/<bot>-teams-app/`` and zip them.

    Returns:
        Path of ``<bot>-teams-app.zip``
    """
    manifest = build_manifest(bot_name, app_id, branding, endpoint)

    staging = Path(output_dir) / f"{bot_name}-teams-app"
    staging.mkdir(parents=True, exist_ok=True)
    (staging / "manifest.json").write_text(json.dumps(manifest, indent=2) + "\n")
    create_icons(staging, bot_name, branding.accent_color)

    package_path = Path(output_dir) / f"{bot_name}-teams-app.zip"
    with zipfile.ZipFile(package_path, "w", zipfile.ZIP_DEFLATED) as archive:
        for name in ("manifest.json", COLOR_ICON, OUTLINE_ICON):
            archive.write(staging / name, name)

    logger.info(f"Wrote Teams app package {package_path}")
    return package_path
