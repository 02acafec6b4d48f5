from mediastack.global_logger import ok, section, skip, warn
from mediastack.results import ActionResult, ActionStatus, ErrorKind
from dataclasses import dataclass
from typing import List, Optional, Tuple
import os, re, tempfile


TOKEN_RE = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")
TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")


@dataclass(frozen=True)
class Artifact:
    template: str
    destination: str
    requires: Tuple[str, ...] = ()
    restart: str = ""
    reload_command: Tuple[str, ...] = ()


ARTIFACTS = (
    Artifact("recyclarr.yml.tpl", "recyclarr/recyclarr.yml", requires=("sonarr", "radarr")),
    Artifact("janitorr.application.yml.tpl", "janitorr/application.yml", restart="janitorr"),
    Artifact("homepage.services.yaml.tpl", "homepage/services.yaml"),
    Artifact(
        "nginx.api-proxy.conf.tpl",
        "nginx/api-proxy.conf",
        reload_command=("media-nginx", "nginx", "-s", "reload"),
    ),
)


def render(template_text: str, bindings: dict) -> str:
    """Substitute ``{{TOKEN}}`` placeholders; unknown tokens become ``""``."""

    def _sub(match):
        value = bindings.get(match.group(1))
        return "" if value is None else str(value)

    return TOKEN_RE.sub(_sub, template_text)


def write_if_changed(path: str, content: str) -> bool:
    """Atomically replace ``path`` with ``content`` unless it already matches."""
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            if f.read() == content:
                return False
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as file:
            file.write(content)
            file.flush()
            os.fsync(file.fileno())
        if os.path.exists(path):
            os.chmod(temp_path, os.stat(path).st_mode & 0o7777)
        os.replace(temp_path, path)
    except OSError:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
    return True


def render_file(template_path: str, dest_path: str, bindings: dict) -> bool:
    with open(template_path, "r", encoding="utf-8") as f:
        content = render(f.read(), bindings)
    return write_if_changed(dest_path, content)


def build_bindings(ctx) -> dict:
    registry = ctx.registry
    keys = ctx.credentials
    config = ctx.config
    sonarr_key = keys.key("sonarr")
    qbit = keys.get("qbittorrent")
    return {
        "SERVER_HOST": registry.host,
        "TIMEZONE": config.get("timezone") or "",
        "SONARR_INTERNAL": registry.get("sonarr").internal_url,
        "SONARR_ANIME_INTERNAL": registry.get("sonarr-anime").internal_url,
        "RADARR_INTERNAL": registry.get("radarr").internal_url,
        "PROWLARR_INTERNAL": registry.get("prowlarr").internal_url,
        "LIDARR_INTERNAL": registry.get("lidarr").internal_url,
        "JELLYFIN_INTERNAL": registry.get("jellyfin").internal_url,
        "JELLYSEERR_INTERNAL": registry.get("jellyseerr").internal_url,
        "SONARR_KEY": sonarr_key,
        "SONARR_ANIME_KEY": keys.key("sonarr-anime"),
        "ANIME_KEY": keys.key("sonarr-anime") or sonarr_key,
        "RADARR_KEY": keys.key("radarr"),
        "PROWLARR_KEY": keys.key("prowlarr"),
        "LIDARR_KEY": keys.key("lidarr"),
        "SABNZBD_KEY": keys.key("sabnzbd"),
        "JELLYSEERR_KEY": keys.key("jellyseerr"),
        "JELLYFIN_API_KEY": keys.key("jellyfin"),
        "JELLYFIN_TOKEN": ctx.secrets.get("jellyfin_token") or keys.key("jellyfin"),
        "BAZARR_WIDGET_KEY": keys.key("bazarr"),
        "SONARR_PROFILE": config.get("quality.sonarr_profile") or "",
        "SONARR_ANIME_PROFILE": config.get("quality.sonarr_anime_profile") or "",
        "RADARR_PROFILE": config.get("quality.radarr_profile") or "",
        "JELLYFIN_USER": config.get("jellyfin.username") or "",
        "JELLYFIN_PASS": config.get("jellyfin.password") or "",
        "QBIT_USER": config.get("qbittorrent.username") or "",
        "QBIT_PASS": qbit.api_key_or_token if qbit else config.get("qbittorrent.password") or "",
    }


def _reload(ctx, artifact: Artifact) -> Optional[str]:
    if not (artifact.restart or artifact.reload_command):
        return None
    if not ctx.runtime.available():
        return "container runtime not available"
    if artifact.restart:
        done, error = ctx.runtime.restart(artifact.restart)
    else:
        done, error = ctx.runtime.exec(*artifact.reload_command)
    return None if done else error


def render_artifacts(ctx, artifacts=ARTIFACTS, template_dir: str = TEMPLATE_DIR) -> List[ActionResult]:
    section("Writing generated configs...")
    bindings = build_bindings(ctx)
    results = []
    for artifact in artifacts:
        dest = os.path.join(ctx.config_dir, artifact.destination)
        missing = [name for name in artifact.requires if not ctx.credentials.key(name)]
        if missing:
            skip("%s: missing API keys for %s", artifact.destination, ", ".join(missing))
            results.append(
                ActionResult(
                    "templates",
                    artifact.destination,
                    ActionStatus.SKIPPED,
                    ErrorKind.MISSING_CREDENTIAL,
                    "missing " + ", ".join(missing),
                )
            )
            continue
        try:
            changed = render_file(os.path.join(template_dir, artifact.template), dest, bindings)
        except OSError as e:
            warn("%s: could not write: %s", artifact.destination, e)
            results.append(
                ActionResult(
                    "templates", artifact.destination, ActionStatus.FAILED, ErrorKind.ACTION_FAILED, str(e)
                )
            )
            continue
        if not changed:
            ok("%s: already up to date", artifact.destination)
            results.append(ActionResult("templates", artifact.destination, ActionStatus.UNCHANGED))
            continue
        ok("%s written", artifact.destination)
        error = _reload(ctx, artifact)
        if error:
            warn("%s: reload failed: %s", artifact.destination, error)
        results.append(ActionResult("templates", artifact.destination, ActionStatus.CHANGED))
    return results
