"""
Action resolution.

Turns an action reference (``./local/path``, ``/abs/path`` or
``{owner}/{repo}[/{path}]@{ref}``) into a local directory plus parsed
metadata. Results are cached in the run state's action cache so a reference
is fetched and parsed at most once per run.
"""

import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Dict, NamedTuple, Optional, Tuple

import yaml

from .. import config
from ..exceptions import ActionNotFoundError, ActionResolutionError
from ..state import ActionState
from .models import Action
from .values import QuotedString

logger = logging.getLogger(__name__)

REPO_REF_PATTERN = re.compile(r'^([^/]+)/([^/@]+)(?:/([^@]+))?@(.+)$')
METADATA_FILES = ("action.yml", "action.yaml")


class MetadataLoader(yaml.SafeLoader):
    """SafeLoader that tags quoted scalars so they are kept as literals."""
    pass


def _construct_str(loader: MetadataLoader, node: yaml.ScalarNode) -> str:
    value = loader.construct_scalar(node)
    if node.style in ("'", '"'):
        return QuotedString(value)
    return value


MetadataLoader.add_constructor('tag:yaml.org,2002:str', _construct_str)


class RepoRef(NamedTuple):
    """Parsed remote action reference."""
    repo: str
    path: str
    ref: str


def is_local_reference(reference: str) -> bool:
    return reference.startswith('./') or reference.startswith('/') or Path(reference).is_absolute()


def parse_repo_ref(reference: str) -> RepoRef:
    """Parse ``{owner}/{repo}[/{path}]@{ref}``; path is '' when omitted."""
    match = REPO_REF_PATTERN.match(reference)
    if not match:
        raise ActionResolutionError(f"invalid action reference: {reference!r}")

    owner, repo, path, ref = match.groups()
    return RepoRef(repo=f"{owner}/{repo}", path=path or "", ref=ref)


class GitSourceFetcher:
    """Materialises ``{owner}/{repo}@{ref}`` trees with the git CLI."""

    def __init__(self, server_url: str = "https://github.com", root: Optional[Path] = None):
        self.server_url = server_url.rstrip('/')
        self.root = root

    def fetch(self, reference: str) -> Path:
        repo_ref = parse_repo_ref(reference)
        root = self.root or config.get_path("actions")
        target = root / repo_ref.repo / repo_ref.ref

        if not (target / ".git").exists():
            if target.exists():
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            url = f"{self.server_url}/{repo_ref.repo}"
            logger.info(f"Download action repository '{repo_ref.repo}@{repo_ref.ref}'")
            self._git("clone", "--quiet", "--depth", "1", "--branch", repo_ref.ref, url, str(target))

        directory = target / repo_ref.path if repo_ref.path else target
        if not directory.is_dir():
            raise ActionResolutionError(f"path '{repo_ref.path}' not found in {repo_ref.repo}@{repo_ref.ref}")
        return directory

    def _git(self, *args: str) -> None:
        try:
            result = subprocess.run(["git", *args], capture_output=True, text=True)
        except OSError as e:
            raise ActionResolutionError(f"failed to run git: {e}")

        if result.returncode != 0:
            raise ActionResolutionError(f"git {args[0]} failed: {result.stderr.strip()}")


def find_metadata_file(directory: Path) -> Path:
    """Return action.yml or action.yaml from the directory root (no recursion)."""
    for name in METADATA_FILES:
        candidate = directory / name
        if candidate.is_file():
            return candidate

    raise ActionNotFoundError(
        f"action.yml or action.yaml not found in the root of the action directory: {directory}"
    )


def load_action(directory: Path, reference: str = "") -> Action:
    metadata_file = find_metadata_file(directory)
    label = f"{reference}/{metadata_file.name}" if reference else str(metadata_file)

    try:
        data = yaml.load(metadata_file.read_bytes(), Loader=MetadataLoader)
    except yaml.YAMLError as e:
        raise ActionResolutionError(f"failed to unmarshal {label}: {e}")

    try:
        return Action.from_dict(data)
    except (ValueError, TypeError, AttributeError) as e:
        raise ActionResolutionError(f"failed to unmarshal {label}: {e}")


class ActionResolver:
    """
    Resolves action references with a per-run cache.

    The cache is the ``actions`` mapping of the run state (source ->
    ActionState); a hit short-circuits to the stored path and metadata.
    """

    def __init__(self, cache: Dict[str, ActionState], fetcher=None):
        self.cache = cache
        self.fetcher = fetcher or GitSourceFetcher()

    def resolve(self, reference: str) -> Tuple[Path, Action]:
        cached = self.cache.get(reference)
        if cached is not None:
            logger.debug(f"Action cache hit for '{reference}'")
            return Path(cached.path), cached.metadata

        if is_local_reference(reference):
            directory = Path(reference).resolve()
            if not directory.is_dir():
                raise ActionResolutionError(f"action directory not found: {reference}")
        else:
            parse_repo_ref(reference)
            directory = Path(self.fetcher.fetch(reference))

        action = load_action(directory, reference)
        self.cache[reference] = ActionState(source=reference, path=str(directory), metadata=action)

        return directory, action
