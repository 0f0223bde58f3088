"""Shared test fixtures and configuration."""

from __future__ import annotations

import os
from pathlib import Path
import sys

import pytest


TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from fakes import FakeRecordBuilder, FakeRevisionSource, make_option, make_package  # noqa: E402

from fc_search.domain import Branch, OptionRecord, PackageRecord  # noqa: E402


# Complete test environment that overrides every config value read by Settings
TEST_ENV = {
    "STATE_DIR": "/tmp/fc-search-tests",
    "REFRESH_SCHEDULE": "0 */5 * * *",
    "DISCOVERY_SCHEDULE": "",
    "CHANNEL_STAGGER_SECONDS": "0",
    "BUILD_TIMEOUT_SECONDS": "5",
    "REFRESH_ON_START": "false",
    "DEFAULT_N_ITEMS": "15",
    "HTTP_TIMEOUT": "5",
    "GITHUB_API_URL": "https://api.github.test",
    "HYDRA_BASE_URL": "https://hydra.test",
    "HYDRA_PROJECT": "flyingcircus",
    "MAX_BRANCHES": "9",
    "DEFAULT_OWNER": "flyingcircusio",
    "DEFAULT_REPOSITORY": "fc-nixos",
    "DEFAULT_BRANCH": "fc-24.05-dev",
    "STATIC_BRANCHES": "",
    "PRUNE_MISSING_CHANNELS": "false",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    # Proxy settings - ensure they're cleared for tests
    "http_proxy": "",
    "https_proxy": "",
    "all_proxy": "",
    "no_proxy": "",
}


for key, value in TEST_ENV.items():
    os.environ[key] = value


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset the environment before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def option_records() -> dict[str, OptionRecord]:
    options = [
        make_option("flyingcircus.roles.webserver.enable", "Enable the Flying Circus webserver role."),
        make_option("flyingcircus.roles.mailserver.enable", "Enable the Flying Circus mailserver role."),
        make_option("flyingcircus.services.nginx.enable", "Whether to enable the managed nginx."),
        make_option("services.nginx.enable", "Whether to enable Nginx Web Server."),
        make_option("services.nginx.virtualHosts", "Declarative vhost config."),
        make_option("services.postgresql.enable", "Whether to enable PostgreSQL Server."),
        make_option("services.postgresql.package", "PostgreSQL package to use."),
        make_option("networking.firewall.enable", "Whether to enable the firewall."),
        make_option("boot.loader.grub.enable", "Whether to enable the GNU GRUB boot loader."),
        make_option("users.users", "Additional user accounts to be created automatically by the system."),
    ]
    return {option.name: option for option in options}


@pytest.fixture
def package_records() -> dict[str, PackageRecord]:
    packages = [
        make_package("gitlab", "GitLab Community Edition"),
        make_package("gitlab-workhorse", "Reverse proxy for GitLab"),
        make_package("gitlab-runner", "GitLab Runner the continuous integration executor of GitLab"),
        make_package("nginx", "A reverse proxy and lightweight webserver"),
        make_package("nginxMainline", "A reverse proxy and lightweight webserver"),
        make_package("postgresql", "A powerful, open source object-relational database system"),
        make_package("python3", "A high-level dynamically-typed programming language"),
        make_package("python311", "A high-level dynamically-typed programming language"),
        make_package(
            "ripgrep",
            "A utility that combines the usability of The Silver Searcher with the raw speed of grep",
        ),
        make_package("hello"),
    ]
    return {package.attribute_name: package for package in packages}


@pytest.fixture
def branch() -> Branch:
    return Branch(owner="flyingcircusio", name="fc-nixos", branch="fc-24.05-dev")


@pytest.fixture
def revisions() -> FakeRevisionSource:
    return FakeRevisionSource()


@pytest.fixture
def builder(option_records, package_records) -> FakeRecordBuilder:
    return FakeRecordBuilder(option_records, package_records)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    path = tmp_path / "state"
    path.mkdir()
    return path

