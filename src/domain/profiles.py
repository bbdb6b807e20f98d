import logging
import os
from pathlib import Path

import tomlkit

from domain.models import OfflineSettings
from shared.constants import PROFILES_DIR

logger = logging.getLogger(__name__)


def _user_profiles_dir() -> Path:
    """
    Determine profiles directory.

    1) GUESTBOOK_OFFLINE_PROFILES, when set.
    2) <project_root>/configs/profiles if it exists (run-from-repo setups).
    3) Otherwise ~/.config/guestbook-offline/profiles.
    """
    override = os.getenv('GUESTBOOK_OFFLINE_PROFILES')
    if override:
        return Path(override)

    project_root = Path(__file__).resolve().parent.parent.parent
    local_profiles = project_root / PROFILES_DIR
    if local_profiles.exists():
        return local_profiles

    return Path.home() / '.config' / 'guestbook-offline' / 'profiles'


def ensure_profiles_dir() -> Path:
    profiles_dir = _user_profiles_dir()
    profiles_dir.mkdir(parents=True, exist_ok=True)
    return profiles_dir


def list_profiles() -> list[str]:
    """Profile names without extension."""
    folder = ensure_profiles_dir()
    return sorted(p.stem for p in folder.glob('*.toml') if p.is_file())


def profile_path(name: str) -> Path:
    return ensure_profiles_dir() / f'{name}.toml'


def load_profile(name_or_path: str) -> OfflineSettings:
    """
    Load and validate a TOML profile into OfflineSettings.

    Accepts a profile name from the profiles directory or a path to a .toml
    file.
    """
    p = Path(name_or_path)
    path = (
        p if p.suffix.lower() == '.toml' and p.exists() else profile_path(name_or_path)
    )
    if not path.exists():
        msg = f'Profile not found: {path}'
        raise FileNotFoundError(msg)
    text = path.read_text(encoding='utf-8')
    data = tomlkit.parse(text).unwrap()
    settings = OfflineSettings.model_validate(data)
    logger.info(
        'Profile %s loaded: cache=%s, %d static assets, zooms=%s',
        path.name,
        settings.version.name,
        len(settings.static_assets),
        list(settings.region.zoom_levels),
    )
    return settings


def save_profile(name: str, settings: OfflineSettings) -> Path:
    """Write the profile as TOML (no atomic replace, no backups)."""
    path = profile_path(name)
    data = settings.model_dump(mode='json')
    # tables go last so scalar keys stay at document level
    data['region'] = data.pop('region')
    path.write_text(tomlkit.dumps(data), encoding='utf-8')
    return path


def delete_profile(name: str) -> None:
    path = profile_path(name)
    if path.exists():
        path.unlink()
