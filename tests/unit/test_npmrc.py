"""Tests for .npmrc registry and auth parsing."""

from core.npmrc import DEFAULT_REGISTRY, NpmrcConfig, load_npmrc, parse_npmrc


class TestNpmrc:
    """Test registry selection and credentials."""

    def test_defaults(self):
        """Should use the public registry without credentials."""
        registry = NpmrcConfig().registry_for("express")
        assert registry.url == DEFAULT_REGISTRY
        assert registry.headers == {}

    def test_scoped_registry_and_token(self, monkeypatch):
        """Should route scopes to their registry and expand env tokens."""
        monkeypatch.setenv("NPM_TOKEN", "s3cret")
        config = NpmrcConfig()
        parse_npmrc(
            "@acme:registry=https://npm.acme.dev/repo\n"
            "//npm.acme.dev/:_authToken=${NPM_TOKEN}\n"
            "# comment\n",
            config,
        )

        registry = config.registry_for("@acme/widgets")
        assert registry.url == "https://npm.acme.dev/repo/"
        assert registry.headers == {"Authorization": "Bearer s3cret"}
        assert config.registry_for("lodash").url == DEFAULT_REGISTRY

    def test_longest_credential_key_wins(self):
        """Should prefer the most specific credential key."""
        config = NpmrcConfig()
        parse_npmrc(
            "registry=https://npm.corp.dev/api/npm/\n"
            "//npm.corp.dev/:_authToken=host-token\n"
            "//npm.corp.dev/api/npm/:_auth=dXNlcjpwYXNz\n",
            config,
        )
        registry = config.registry_for("anything")
        assert registry.auth_type == "basic"
        assert registry.headers == {"Authorization": "Basic dXNlcjpwYXNz"}

    def test_load_npmrc_layers_and_env(self, tmp_path, monkeypatch):
        """Should read home then project files and let the env registry win."""
        home = tmp_path / "home"
        project = tmp_path / "project"
        home.mkdir()
        project.mkdir()
        (home / ".npmrc").write_text("registry=https://home.example/\n")
        (project / ".npmrc").write_text("@scope:registry=https://scope.example\n")
        monkeypatch.delenv("npm_config_registry", raising=False)
        monkeypatch.delenv("NPM_CONFIG_REGISTRY", raising=False)

        config = load_npmrc(project, home=home)
        assert config.default_registry == "https://home.example/"
        assert config.scopes == {"@scope": "https://scope.example/"}

        monkeypatch.setenv("npm_config_registry", "https://env.example")
        assert load_npmrc(project, home=home).default_registry == "https://env.example/"
