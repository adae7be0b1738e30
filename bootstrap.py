#!/usr/bin/env python3
"""
Resume Matcher - Development Environment Setup

Provisions a development machine for the Resume Matcher monorepo in one command:
verifies the required tools, installs Ollama and the default model, bootstraps the
.env files and installs root, backend and frontend dependencies.

Usage:
    python bootstrap.py                  # Provision, then print next steps
    python bootstrap.py --start-dev      # Provision, then run the dev server
    python bootstrap.py --start-dev -y   # Same, run the Ollama installer without asking
    python bootstrap.py --help           # Show usage and exit

Requirements:
    - Node.js 18+ and npm
    - Python 3 (pip3 is installed automatically if missing)
    - curl (for the uv and Ollama installers, if needed)

Configuration:
    Every default can be overridden with a BOOTSTRAP_* environment variable,
    e.g. BOOTSTRAP_OLLAMA_MODEL=llama3.2:3b or BOOTSTRAP_NODE_MIN_MAJOR=20.

Why sudo? (Linux only):
    If pip3 is missing it is installed through apt-get or yum, which needs root.
    If running as root (e.g., in Docker containers), sudo is skipped automatically.

After setup:
    npm run dev       # start development server
    npm run build     # build for production
"""

import argparse
import logging
import os
import platform
import re
import shutil
import signal
import subprocess
import sys
import tempfile
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

UV_INSTALL_URL = "https://astral.sh/uv/install.sh"
OLLAMA_INSTALL_URL = "https://ollama.com/install.sh"

DEFAULT_OLLAMA_MODEL = "gemma3:4b"
NODE_MIN_MAJOR = 18

ACTIVE_ENV_NAME = ".env"

# Root detection — when running as root (e.g., in Docker containers),
# sudo is unnecessary and may not even be installed.
IS_ROOT = (os.getuid() == 0) if hasattr(os, 'getuid') else False


def _sudo() -> List[str]:
    """Return ['sudo'] prefix, or [] if already running as root."""
    return [] if IS_ROOT else ['sudo']


# ANSI color codes
class Color:
    RESET = '\033[0m'
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'


# ============================================================================
# Configuration
# ============================================================================

class BootstrapSettings(BaseSettings):
    """Setup settings loaded from BOOTSTRAP_* environment variables."""

    # Prerequisites
    node_min_major: int = NODE_MIN_MAJOR

    # Remote installers (downloaded over HTTPS only)
    uv_install_url: str = UV_INSTALL_URL
    ollama_install_url: str = OLLAMA_INSTALL_URL

    # Local model runtime
    ollama_model: str = DEFAULT_OLLAMA_MODEL

    # Project layout, relative to the repository root
    backend_dir: str = "apps/backend"
    frontend_dir: str = "apps/frontend"
    root_env_template: str = ".env.example"
    app_env_template: str = ".env.sample"

    # Dev server (run from the repository root)
    dev_command: List[str] = ["npm", "run", "dev"]

    # Logging
    log_level: str = "info"

    @model_validator(mode="after")
    def _validate(self) -> "BootstrapSettings":
        if self.node_min_major < 1:
            raise ValueError("BOOTSTRAP_NODE_MIN_MAJOR must be a positive major version")
        if not self.dev_command:
            raise ValueError("BOOTSTRAP_DEV_COMMAND must not be empty")
        for url in (self.uv_install_url, self.ollama_install_url):
            if not url.startswith("https://"):
                raise ValueError(f"Installer URL must use HTTPS: {url}")
        return self

    class Config:
        env_prefix = "BOOTSTRAP_"


# ============================================================================
# Exception Classes
# ============================================================================

class CheckError(Exception):
    """Critical failure that aborts the whole setup run."""
    pass


# ============================================================================
# Step Context — working directory + environment for external commands
# ============================================================================

class StepContext:
    """Working directory and environment handed to every external command.

    Steps never chdir or touch os.environ; they pass ``cwd`` per command and
    extend the PATH held here, which lasts for the rest of the run.
    """

    def __init__(self, root: Path, env: Optional[Dict[str, str]] = None):
        self.root = root
        self.env: Dict[str, str] = dict(os.environ if env is None else env)
        self.env['PYTHONDONTWRITEBYTECODE'] = '1'

    @property
    def path(self) -> str:
        return self.env.get('PATH', '')

    @property
    def home(self) -> Path:
        return Path(self.env.get('HOME') or Path.home())

    def which(self, cmd: str) -> Optional[str]:
        """Look up ``cmd`` on this context's PATH."""
        return shutil.which(cmd, path=self.path)

    def prepend_path(self, directory: Path):
        entries = [str(directory)]
        if self.path:
            entries.append(self.path)
        self.env['PATH'] = os.pathsep.join(entries)
        logger.debug("PATH += %s", directory)

    def run(
        self,
        cmd: List[str],
        cwd: Optional[Path] = None,
        capture: bool = False,
    ) -> subprocess.CompletedProcess:
        """Run a command synchronously, with no timeout.

        A missing executable is reported as a CheckError.
        """
        workdir = cwd or self.root
        logger.debug("Running %s (cwd=%s)", ' '.join(cmd), workdir)
        try:
            return subprocess.run(
                cmd,
                cwd=str(workdir),
                env=self.env,
                capture_output=capture,
                text=True,
            )
        except FileNotFoundError:
            raise CheckError(f"{cmd[0]} is not installed. Please install it and retry.")

    def spawn(self, cmd: List[str], cwd: Optional[Path] = None) -> subprocess.Popen:
        """Start a foreground command that inherits stdio; the caller waits on it."""
        workdir = cwd or self.root
        logger.debug("Starting %s (cwd=%s)", ' '.join(cmd), workdir)
        try:
            return subprocess.Popen(cmd, cwd=str(workdir), env=self.env)
        except FileNotFoundError:
            raise CheckError(f"{cmd[0]} is not installed. Please install it and retry.")


# ============================================================================
# Reporter — user-facing console output
# ============================================================================

class Reporter:
    """Colored progress output. Failures go to stderr."""

    def __init__(self, color_enabled: bool = True):
        self.color_enabled = color_enabled

    def _colorize(self, text: str, color: str) -> str:
        if not self.color_enabled:
            return text
        return f"{color}{text}{Color.RESET}"

    def info(self, message: str):
        print(f"  {message}")

    def success(self, message: str):
        print(self._colorize(f"✓ {message}", Color.GREEN))

    def warning(self, message: str):
        print(self._colorize(f"⚠️  {message}", Color.YELLOW))

    def error(self, message: str):
        print(self._colorize(f"✗ {message}", Color.RED), file=sys.stderr)


# ============================================================================
# Environment Prober
# ============================================================================

def detect_os_type(system_name: Optional[str] = None) -> str:
    """Classify the host OS family: 'Linux', 'macOS', or the raw system name."""
    name = platform.system() if system_name is None else system_name
    if name.startswith('Linux'):
        return 'Linux'
    if name.startswith('Darwin'):
        return 'macOS'
    return name


# ============================================================================
# ToolVerifier
# ============================================================================

class ToolVerifier:
    """Checks node, npm, python3, pip3 and uv, installing pip3 and uv if absent."""

    def __init__(
        self,
        context: StepContext,
        reporter: Reporter,
        os_type: str,
        settings: BootstrapSettings,
    ):
        self.context = context
        self.reporter = reporter
        self.os_type = os_type
        self.settings = settings

    def verify_all(self):
        self.reporter.info('Checking prerequisites')
        self.check_command('node')
        self.check_node_version()
        self.check_command('npm')
        self.check_command('python3')
        self.ensure_pip()
        self.ensure_uv()
        self.reporter.success('All prerequisites satisfied.')

    def check_command(self, cmd: str):
        if not self.context.which(cmd):
            raise CheckError(f"{cmd} is not installed. Please install it and retry.")

    def check_node_version(self) -> int:
        """Return the Node.js major version, failing if below the minimum."""
        minimum = self.settings.node_min_major
        result = self.context.run(['node', '--version'], capture=True)
        reported = (result.stdout or '').strip()
        match = re.match(r'^v?(\d+)', reported)
        if result.returncode != 0 or not match:
            raise CheckError(f"Could not determine Node.js version (got {reported!r}).")

        major = int(match.group(1))
        if major < minimum:
            raise CheckError(
                f"Node.js v{minimum}+ is required (found {reported})."
            )
        return major

    def _linux_pip_installer(self) -> Optional[Tuple[str, List[List[str]]]]:
        """(package manager, commands) that install python3-pip, or None off apt/yum Linux."""
        if self.os_type != 'Linux':
            return None
        if self.context.which('apt-get'):
            return ('apt-get', [
                [*_sudo(), 'apt-get', 'update'],
                [*_sudo(), 'apt-get', 'install', '-y', 'python3-pip'],
            ])
        if self.context.which('yum'):
            return ('yum', [[*_sudo(), 'yum', 'install', '-y', 'python3-pip']])
        return None

    def ensure_pip(self):
        if not self.context.which('pip3'):
            installer = self._linux_pip_installer()
            if installer:
                manager, commands = installer
                self.reporter.info(f'pip3 not found; installing via {manager}')
                if _sudo():
                    self.reporter.warning('You may be asked for your sudo password')
                for cmd in commands:
                    if self.context.run(cmd).returncode != 0:
                        raise CheckError('Failed to install python3-pip')
            else:
                self.reporter.info('pip3 not found; bootstrapping via ensurepip')
                result = self.context.run(['python3', '-m', 'ensurepip', '--upgrade'])
                if result.returncode != 0:
                    raise CheckError('ensurepip failed')
        self.check_command('pip3')
        self.reporter.success('pip3 is available')

    def ensure_uv(self):
        if not self.context.which('uv'):
            self.reporter.info('uv not found; installing via Astral.sh')
            result = self.context.run([
                'bash', '-c',
                f'set -o pipefail; curl -LsSf {self.settings.uv_install_url} | sh',
            ])
            if result.returncode != 0:
                raise CheckError('Failed to install uv')
            self.context.prepend_path(self.context.home / '.local' / 'bin')
        self.check_command('uv')


# ============================================================================
# ModelRuntimeInstaller
# ============================================================================

def prompt_confirm(prompt: str) -> bool:
    """Ask on the terminal. Anything but a single y or Y (including EOF) is a no."""
    try:
        answer = input(f"{prompt} (y/N): ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer == 'y'


class ModelRuntimeInstaller:
    """Ensures Ollama is installed and the configured model is pulled.

    ``confirm`` decides whether a downloaded installer script may run; it is
    called with the prompt text and must return True to proceed.
    """

    def __init__(
        self,
        context: StepContext,
        reporter: Reporter,
        os_type: str,
        settings: BootstrapSettings,
        confirm: Callable[[str], bool] = prompt_confirm,
    ):
        self.context = context
        self.reporter = reporter
        self.os_type = os_type
        self.settings = settings
        self.confirm = confirm

    def ensure_runtime(self):
        self.reporter.info('Checking Ollama installation')
        if self.context.which('ollama'):
            return

        self.reporter.info('ollama not found; installing')
        if self.os_type == 'macOS':
            result = self.context.run(['brew', 'install', 'ollama'])
            if result.returncode != 0:
                raise CheckError('Failed to install Ollama via Homebrew')
        else:
            self._run_install_script()
            self.context.prepend_path(self.context.home / '.local' / 'bin')

        if not self.context.which('ollama'):
            raise CheckError('ollama is not installed. Please install it and retry.')

    def _run_install_script(self):
        """Download the Ollama installer and run it only after confirmation."""
        fd, tmp_name = tempfile.mkstemp(prefix='ollama-install-', suffix='.sh')
        os.close(fd)
        script = Path(tmp_name)
        try:
            result = self.context.run([
                'curl', '-LsSf', self.settings.ollama_install_url, '-o', str(script),
            ])
            if result.returncode != 0:
                raise CheckError('Failed to download Ollama install script')

            self.reporter.info(f'Ollama install script downloaded to {script}')
            self.reporter.info('Please verify the script before execution.')
            if not self.confirm('Do you want to execute the Ollama install script now?'):
                raise CheckError('Ollama installation aborted by user.')

            result = self.context.run(['sh', str(script)])
            if result.returncode != 0:
                raise CheckError('Failed to execute Ollama install script')
            self.reporter.success('Ollama installed')
        finally:
            script.unlink(missing_ok=True)

    def has_model(self) -> bool:
        result = self.context.run(['ollama', 'list'], capture=True)
        if result.returncode != 0:
            logger.debug("ollama list failed: %s", (result.stderr or '').strip())
            return False
        return self.settings.ollama_model in (result.stdout or '')

    def ensure_model(self):
        model = self.settings.ollama_model
        if self.has_model():
            self.reporter.info(f'{model} model already present — skipping')
            return

        self.reporter.info(f'Pulling {model} model')
        if self.context.run(['ollama', 'pull', model]).returncode != 0:
            raise CheckError(f'Failed to pull {model}')
        self.reporter.success(f'{model} model ready')


# ============================================================================
# Sub-projects
# ============================================================================

class SubProject:
    """One install location: its directory, env template and locked install command."""

    __slots__ = ('label', 'directory', 'env_template', 'install_command')

    def __init__(
        self,
        label: str,
        directory: str,
        env_template: str,
        install_command: List[str],
    ):
        self.label = label
        self.directory = directory
        self.env_template = env_template
        self.install_command = install_command

    def path(self, root: Path) -> Path:
        return root / self.directory

    def __repr__(self) -> str:
        return f"SubProject({self.label!r}, {self.directory!r})"


def default_projects(settings: BootstrapSettings) -> List[SubProject]:
    """Root, backend and frontend, in install order."""
    return [
        SubProject('root', '.', settings.root_env_template, ['npm', 'ci']),
        SubProject('backend', settings.backend_dir, settings.app_env_template, ['uv', 'sync']),
        SubProject('frontend', settings.frontend_dir, settings.app_env_template, ['npm', 'ci']),
    ]


# ============================================================================
# EnvFileBootstrapper
# ============================================================================

class EnvFileOutcome(Enum):
    """What bootstrapping a single .env location did."""
    CREATED = 'created'
    EXISTS = 'exists'
    NO_TEMPLATE = 'no_template'


def atomic_copy(source: Path, target: Path):
    """Copy a file via a temp file + rename so a partial copy never lands at target."""
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f'{target.name}.', suffix='.tmp')
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        shutil.copyfile(source, tmp_path)
        tmp_path.replace(target)
    finally:
        tmp_path.unlink(missing_ok=True)


class EnvFileBootstrapper:
    """Creates .env from its template, never overwriting an existing one."""

    def __init__(self, context: StepContext, reporter: Reporter):
        self.context = context
        self.reporter = reporter

    def bootstrap(self, project: SubProject) -> EnvFileOutcome:
        directory = project.path(self.context.root)
        template = directory / project.env_template
        active = directory / ACTIVE_ENV_NAME
        label = project.label.capitalize()

        if active.exists():
            self.reporter.info(f'{label} {ACTIVE_ENV_NAME} already exists — skipping')
            return EnvFileOutcome.EXISTS
        if not template.is_file():
            self.reporter.info(f'No {project.env_template} for {project.label} — skipping')
            return EnvFileOutcome.NO_TEMPLATE

        self.reporter.info(f'Bootstrapping {project.label} {ACTIVE_ENV_NAME} from {project.env_template}')
        try:
            atomic_copy(template, active)
        except OSError as e:
            raise CheckError(f'Could not create {active}: {e}')
        self.reporter.success(f'{label} {ACTIVE_ENV_NAME} created')
        return EnvFileOutcome.CREATED


# ============================================================================
# DependencyInstaller
# ============================================================================

class DependencyInstaller:
    """Runs each sub-project's locked install command inside its directory."""

    def __init__(self, context: StepContext, reporter: Reporter):
        self.context = context
        self.reporter = reporter

    def install(self, project: SubProject):
        directory = project.path(self.context.root)
        command = ' '.join(project.install_command)
        if not directory.is_dir():
            raise CheckError(f'{project.label.capitalize()} directory not found: {directory}')

        self.reporter.info(f'Installing {project.label} dependencies with {command}')
        result = self.context.run(project.install_command, cwd=directory)
        if result.returncode != 0:
            raise CheckError(
                f'{project.label.capitalize()} dependency install failed '
                f'({command} exited with code {result.returncode})'
            )
        self.reporter.success(f'{project.label.capitalize()} dependencies ready.')


# ============================================================================
# DevServerLauncher
# ============================================================================

class DevServerLauncher:
    """Runs the dev server in the foreground; Ctrl+C exits setup with code 0.

    The child gets the terminal's SIGINT itself and is left to shut down on
    its own; setup only exits once it has.
    """

    def __init__(self, context: StepContext, reporter: Reporter, command: List[str]):
        self.context = context
        self.reporter = reporter
        self.command = command
        self.interrupted = False

    def _handle_interrupt(self, signum, frame):
        if not self.interrupted:
            self.reporter.info('Gracefully shutting down development server.')
        self.interrupted = True

    def start(self) -> int:
        self.reporter.info('Starting development server')
        self.interrupted = False
        previous = signal.signal(signal.SIGINT, self._handle_interrupt)
        try:
            process = self.context.spawn(self.command)
            returncode = process.wait()
        finally:
            signal.signal(signal.SIGINT, previous)

        if self.interrupted:
            raise SystemExit(0)
        return returncode


# ============================================================================
# SetupRunner
# ============================================================================

class SetupRunner:
    """Runs every provisioning step in order and stops at the first failure."""

    def __init__(
        self,
        settings: BootstrapSettings,
        context: StepContext,
        reporter: Reporter,
        confirm: Callable[[str], bool] = prompt_confirm,
        start_dev: bool = False,
        os_type: Optional[str] = None,
    ):
        self.settings = settings
        self.context = context
        self.reporter = reporter
        self.start_dev = start_dev
        self.os_type = os_type or detect_os_type()
        self.projects = default_projects(settings)

        self.verifier = ToolVerifier(context, reporter, self.os_type, settings)
        self.model_installer = ModelRuntimeInstaller(
            context, reporter, self.os_type, settings, confirm=confirm,
        )
        self.env_bootstrapper = EnvFileBootstrapper(context, reporter)
        self.dependency_installer = DependencyInstaller(context, reporter)
        self.launcher = DevServerLauncher(context, reporter, settings.dev_command)

    def run(self) -> int:
        """Return the process exit code: 0 on success, 1 on the first failed step."""
        try:
            return self._run_steps()
        except CheckError as e:
            self.reporter.error(str(e))
            return 1

    def _run_steps(self) -> int:
        self.reporter.info(f'Detected operating system: {self.os_type}')

        self.verifier.verify_all()

        # The runtime must exist before its registry can be listed.
        self.model_installer.ensure_runtime()
        self.model_installer.ensure_model()

        for project in self.projects:
            if project.directory != '.':
                self.reporter.info(f'Setting up {project.label} ({project.directory})')
            self.env_bootstrapper.bootstrap(project)
            self.dependency_installer.install(project)

        if self.start_dev:
            return self.launcher.start()

        self.print_next_steps()
        return 0

    def print_next_steps(self):
        self.reporter.success('Setup complete!')
        print()
        print('Next steps:')
        print('  • Run `npm run dev` to start in development mode.')
        print('  • Run `npm run build` for production.')
        print('  • See SETUP.md for more details.')


# ============================================================================
# CLI
# ============================================================================

def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description='Resume Matcher - Development Environment Setup',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
This script will:
  • Verify required tools: node, npm, python3, pip3, uv
  • Install Ollama & pull the default model (gemma3:4b)
  • Bootstrap root, backend and frontend .env files
  • Install root dependencies via npm ci
  • Install backend Python deps via uv sync
  • Install frontend dependencies via npm ci

After setup:
  npm run dev       # start development server
  npm run build     # build for production
        """
    )
    parser.add_argument(
        '--start-dev',
        action='store_true',
        help='After setup completes, start the dev server (with graceful SIGINT handling)'
    )
    parser.add_argument(
        '--root',
        type=Path,
        default=Path('.'),
        help='Repository root to provision (default: current directory)'
    )
    parser.add_argument(
        '--yes', '-y',
        action='store_true',
        help='Run the downloaded Ollama install script without asking for confirmation'
    )
    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable colored output'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log every external command'
    )
    return parser


def configure_logging(settings: BootstrapSettings, verbose: bool = False):
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    reporter = Reporter(color_enabled=not args.no_color and sys.stdout.isatty())

    try:
        settings = BootstrapSettings()
    except ValidationError as e:
        reporter.error(f'Invalid BOOTSTRAP_* configuration:\n{e}')
        return 1
    configure_logging(settings, args.verbose)

    context = StepContext(args.root.resolve())

    if args.yes:
        def confirm(prompt: str) -> bool:
            reporter.info(f'{prompt} (auto-confirmed with --yes)')
            return True
    else:
        confirm = prompt_confirm

    runner = SetupRunner(
        settings,
        context,
        reporter,
        confirm=confirm,
        start_dev=args.start_dev,
    )
    return runner.run()


if __name__ == '__main__':
    sys.exit(main())
