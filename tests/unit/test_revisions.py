"""
Tests for Revision Registration.

This test suite covers:
1. Numeric ordering and uniqueness of listed revisions
2. Inheritance and overriding of revisions and tasks
3. Registration errors
4. Per-instance caching
5. Handler class resolution
"""

import pytest

from upgrader.extension import loader, registry
from upgrader.extension.handler import Extension, UpgradeHandler
from upgrader.extension.registry import RegistrationError, revision, task


class NumericHandler(UpgradeHandler):
    @revision(10)
    def upgrade_10(self, ctx):
        return True

    @revision(2)
    def upgrade_2(self, ctx):
        return True


class ChildHandler(NumericHandler):
    @revision(11)
    def add_index(self, ctx):
        return True

    @task
    def rebuild(self, ctx, table):
        return table


class EmptyHandler(UpgradeHandler):
    pass


class TestListRevisions:
    """Test revision discovery."""

    def test_numeric_order(self):
        """Revisions should sort numerically, not lexically."""
        assert registry.list_revisions(NumericHandler) == [2, 10]

    def test_inherited_revisions(self):
        """Subclasses should inherit and extend revisions."""
        assert registry.list_revisions(ChildHandler) == [2, 10, 11]
        assert registry.list_revisions(NumericHandler) == [2, 10]

    def test_empty(self):
        """A handler without revisions should list none."""
        assert registry.list_revisions(EmptyHandler) == []

    def test_result_is_strictly_ascending(self):
        """Listed revisions should be strictly ascending."""
        revisions = registry.list_revisions(ChildHandler)
        assert all(a < b for a, b in zip(revisions, revisions[1:]))

    def test_revision_function(self):
        """Should return the function registered for a revision."""
        assert registry.revision_function(ChildHandler, 11) is ChildHandler.add_index

        with pytest.raises(RegistrationError, match="no upgrade for revision 3"):
            registry.revision_function(ChildHandler, 3)

    def test_task_function(self):
        """Should return functions marked with @task."""
        assert registry.task_function(ChildHandler, "rebuild") is ChildHandler.rebuild

        with pytest.raises(RegistrationError, match="no task named"):
            registry.task_function(NumericHandler, "rebuild")


class TestRegistrationErrors:
    """Test validation at class creation."""

    def test_duplicate_revision(self):
        """Two functions claiming one revision should be rejected."""
        with pytest.raises(RegistrationError, match="claimed by both"):

            class Duplicate(UpgradeHandler):
                @revision(5)
                def first(self, ctx):
                    pass

                @revision(5)
                def second(self, ctx):
                    pass

    def test_negative_revision(self):
        """Negative revisions should be rejected."""
        with pytest.raises(RegistrationError, match="non-negative integer"):
            revision(-1)

    def test_non_integer_revision(self):
        """Non-integer revisions should be rejected."""
        with pytest.raises(RegistrationError):
            revision("12")

        with pytest.raises(RegistrationError):
            revision(True)


class TestOverrides:
    """Test subclasses redefining registered methods."""

    def test_override_with_new_revision(self):
        """Should replace the inherited revision with the new number."""

        class Base(UpgradeHandler):
            @revision(1)
            def migrate(self, ctx):
                return True

        class Child(Base):
            @revision(2)
            def migrate(self, ctx):
                return True

        assert registry.list_revisions(Child) == [2]
        assert registry.revision_function(Child, 2) is Child.migrate
        assert registry.list_revisions(Base) == [1]

        with pytest.raises(RegistrationError, match="no upgrade for revision 1"):
            registry.revision_function(Child, 1)

    def test_override_without_decorator(self):
        """Should drop a revision whose method is redefined undecorated."""

        class Child(NumericHandler):
            def upgrade_10(self, ctx):
                return True

        assert registry.list_revisions(Child) == [2]

    def test_task_override_without_decorator(self):
        """Should drop a task whose method is redefined undecorated."""

        class Grandchild(ChildHandler):
            def rebuild(self, ctx, table):
                return None

        with pytest.raises(RegistrationError, match="no task named"):
            registry.task_function(Grandchild, "rebuild")
        assert registry.list_revisions(Grandchild) == [2, 10, 11]


class TestHandlerCaching:
    """Test per-instance revision caching."""

    def test_revisions_cached_per_instance(self, monkeypatch):
        """get_revisions() should compute the list only once per instance."""
        calls = []
        original = registry.list_revisions

        def counting(handler_type):
            calls.append(handler_type)
            return original(handler_type)

        monkeypatch.setattr(registry, "list_revisions", counting)

        handler = NumericHandler()
        assert handler.get_revisions() == [2, 10]
        assert handler.get_revisions() == [2, 10]
        assert len(calls) == 1

        NumericHandler().get_revisions()
        assert len(calls) == 2


class TestExtension:
    """Test the extension descriptor."""

    def test_upgradeable(self, tmp_path):
        assert Extension("org.example.a", tmp_path).upgradeable
        assert not Extension("org.example.a", tmp_path, type="payment").upgradeable


class TestLoader:
    """Test handler class resolution."""

    def test_registered_on_definition(self):
        """Handler classes should resolve without importing."""
        path = loader.handler_path(ChildHandler)
        assert path.endswith(":ChildHandler")
        assert loader.resolve_handler_type(path) is ChildHandler

    def test_resolve_by_import(self, monkeypatch):
        """Unknown paths should be imported and cached."""
        monkeypatch.setattr(loader, "_handler_cache", {})

        path = "upgrader.extension.handler:UpgradeHandler"
        assert loader.resolve_handler_type(path) is UpgradeHandler
        assert path in loader._handler_cache

    def test_invalid_path(self):
        """Malformed paths should raise LoaderError."""
        with pytest.raises(loader.LoaderError, match="Invalid handler path"):
            loader.resolve_handler_type("no-colon")

    def test_missing_module(self):
        with pytest.raises(loader.LoaderError, match="Failed to import"):
            loader.resolve_handler_type("upgrader_missing_module:Handler")

    def test_not_a_handler(self):
        """Paths to non-handler objects should be rejected."""
        with pytest.raises(loader.LoaderError, match="not an UpgradeHandler"):
            loader.resolve_handler_type("upgrader.extension.handler:Extension")
