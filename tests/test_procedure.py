"""Unit tests for procedure chains, builders and configuration resolution."""

from __future__ import annotations

import pytest
from pydantic import ValidationError
from samples import PostInput

from zsa import (
    ActionConfig,
    CompiledProcedure,
    ServerAction,
    ZSAConfigurationError,
    create_server_action,
    create_server_action_procedure,
)
from zsa.procedure import ProcedureChain, ProcedureLink
from zsa.types import ActionCallbacks, RetryConfig


def noop():
    return None


# ─── Chain structure ─────────────────────────────────────────────────────────


class TestProcedureChain:
    """Tests for building procedure chains."""

    def test_handler_appends_one_link(self):
        """Each compiled procedure adds exactly one link to its parent."""
        base = create_server_action_procedure().handler(lambda: {"user": "ada"})
        child = create_server_action_procedure(base).handler(lambda ctx: ctx)

        assert isinstance(base, CompiledProcedure)
        assert len(base.chain.links) == 1
        assert len(child.chain.links) == 2
        assert child.chain.links[0] is base.chain.links[0]

    def test_parent_is_not_mutated(self):
        """Extending a procedure leaves the parent chain untouched."""
        base = create_server_action_procedure().handler(noop)
        create_server_action_procedure(base).on_start(noop).handler(noop)
        create_server_action_procedure(base).handler(noop)

        assert len(base.chain.links) == 1

    def test_uncompiled_procedure_contributes_config_only(self):
        """A procedure passed without a handler adds a step-less link."""
        action = create_server_action(create_server_action_procedure().timeout(50)).handler(noop)

        assert len(action.chain.links) == 1
        assert action.chain.links[0].handler is None
        assert action.config.timeout_ms == 50

    def test_input_shape_recorded_on_link(self):
        proc = create_server_action_procedure().input(PostInput).handler(noop)
        assert proc.chain.links[0].input_shape.schema is PostInput

    def test_create_server_action_rejects_other_values(self):
        with pytest.raises(ZSAConfigurationError, match="Expected a procedure"):
            create_server_action("not a procedure")


# ─── Builder immutability ────────────────────────────────────────────────────


class TestBuilderImmutability:
    """Setters return new builders so branches never interfere."""

    def test_branching_builder_does_not_leak_callbacks(self):
        """Two actions built from one base builder keep separate callbacks."""

        def first_hook():
            pass

        def second_hook():
            pass

        base = create_server_action().input(PostInput)
        first = base.on_success(first_hook).handler(noop)
        second = base.on_success(second_hook).handler(noop)

        assert first.config.callbacks.on_success == (first_hook,)
        assert second.config.callbacks.on_success == (second_hook,)

    def test_branching_procedure_does_not_leak_retry(self):
        """Branches of one procedure builder keep their own retry policy."""
        base = create_server_action_procedure()
        retried = base.retry(3).handler(noop)
        plain = base.handler(noop)

        assert retried.chain.links[0].config.retry.max_attempts == 3
        assert plain.chain.links[0].config.retry is None

    def test_action_is_immutable_value(self):
        action = create_server_action().name("greet").handler(noop)
        assert isinstance(action, ServerAction)
        assert action.name == "greet"
        with pytest.raises(ValidationError):
            action.config.timeout_ms = 10


# ─── Resolution ──────────────────────────────────────────────────────────────


class TestResolution:
    """Tests for folding a chain into one effective configuration."""

    def test_callbacks_concatenate_in_chain_order(self):
        def proc_hook():
            pass

        def child_hook():
            pass

        def action_hook():
            pass

        proc = create_server_action_procedure().on_start(proc_hook).handler(noop)
        child = create_server_action_procedure(proc).on_start(child_hook).handler(noop)
        action = create_server_action(child).on_start(action_hook).handler(noop)

        assert action.config.callbacks.on_start == (proc_hook, child_hook, action_hook)

    def test_action_retry_replaces_procedure_retry(self):
        """The nearest retry policy wins wholesale; fields are not merged."""
        proc = create_server_action_procedure().retry(5, delay=250).handler(noop)
        action = create_server_action(proc).retry(2).handler(noop)

        assert action.config.retry == RetryConfig(max_attempts=2, delay=0)

    def test_action_timeout_replaces_procedure_timeout(self):
        proc = create_server_action_procedure().timeout(1000).handler(noop)
        action = create_server_action(proc).timeout(10).handler(noop)

        assert action.config.timeout_ms == 10

    def test_procedure_policies_inherited(self):
        """Without action-level settings the procedure's apply."""
        proc = create_server_action_procedure().retry(4).timeout(300).handler(noop)
        action = create_server_action(proc).handler(noop)

        assert action.config.retry.max_attempts == 4
        assert action.config.timeout_ms == 300

    def test_nearer_procedure_wins_over_farther(self):
        outer = create_server_action_procedure().retry(4).handler(noop)
        inner = create_server_action_procedure(outer).retry(2).handler(noop)
        action = create_server_action(inner).handler(noop)

        assert action.config.retry.max_attempts == 2

    def test_resolve_on_raw_chain(self):
        """ProcedureChain.resolve overlays the own config last."""

        def hook():
            pass

        chain = ProcedureChain().append(
            ProcedureLink(config=ActionConfig(callbacks=ActionCallbacks(on_error=(hook,))))
        )
        own = ActionConfig(callbacks=ActionCallbacks(on_error=(noop,)), timeout_ms=5)
        effective = chain.resolve(own)

        assert effective.callbacks.on_error == (hook, noop)
        assert effective.timeout_ms == 5


# ─── Definition-time validation ──────────────────────────────────────────────


class TestDefinitionErrors:
    """Misconfiguration is reported when the action is defined."""

    @pytest.mark.parametrize("max_attempts", [0, -1])
    def test_retry_needs_positive_attempts(self, max_attempts):
        with pytest.raises(ZSAConfigurationError, match="Invalid retry policy"):
            create_server_action().retry(max_attempts)

    @pytest.mark.parametrize("ms", [0, -5])
    def test_timeout_must_be_positive(self, ms):
        with pytest.raises(ZSAConfigurationError, match="Timeout must be positive"):
            create_server_action().timeout(ms)

    def test_handler_with_unknown_required_argument(self):
        def handler(input, user):
            return user

        with pytest.raises(ZSAConfigurationError, match="requires argument 'user'"):
            create_server_action().handler(handler)

    def test_callback_with_unknown_required_argument(self):
        def on_error(error):
            pass

        with pytest.raises(ZSAConfigurationError, match="requires argument 'error'"):
            create_server_action().on_error(on_error)

    def test_handler_must_be_callable(self):
        with pytest.raises(ZSAConfigurationError, match="must be callable"):
            create_server_action().handler(42)

    def test_optional_and_variadic_arguments_accepted(self):
        def handler(input, extra=None, **kwargs):
            return input

        assert create_server_action().handler(handler).handler is handler
