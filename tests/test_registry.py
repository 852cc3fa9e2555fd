import pytest

from ly_bdd.line_mapper import PatternTypeConversionError, mapper
from ly_bdd.model import DataTable, DocString, SourceLocation
from ly_bdd.registry import StepContext, StepRegistry


class World:
    def __init__(self):
        self.calls = []


def test_first_match_wins():
    """Registration order decides between patterns that match the same line."""
    registry = StepRegistry()
    registry.register("I have {thing}", lambda context, ctx: "generic")
    registry.register("I have cucumbers", lambda context, ctx: "specific")
    match = registry.match("I have cucumbers")
    assert match is not None
    assert match.params == ["cucumbers"]
    assert match.function(None, StepContext()) == "generic"


def test_no_match():
    registry = StepRegistry.from_mapping({"a step": lambda context, ctx: None})
    assert registry.match("another step") is None
    assert not registry.has_match("another step")
    assert len(registry) == 1


def test_has_match_ignores_conversion():
    registry = StepRegistry()
    registry.register("I have {count} apples", lambda context, ctx: None, types={"count": int})
    assert registry.has_match("I have many apples")
    with pytest.raises(PatternTypeConversionError):
        registry.match("I have many apples")


def test_decorators_share_one_registry():
    registry = StepRegistry()

    @registry.given("a {count} step", types={"count": int})
    def given_step(context, ctx):
        context.calls.append(("given", ctx.first_arg))

    @registry.when("another step")
    def when_step(context, ctx):
        context.calls.append(("when",))

    @registry.then("a final step")
    async def then_step(context, ctx):
        context.calls.append(("then",))

    assert len(registry) == 3
    assert registry.patterns == ["a {count} step", "another step", "a final step"]
    assert given_step.__name__ == "given_step"


@pytest.mark.asyncio
async def test_execute_sync_and_async():
    registry = StepRegistry()

    @registry.step("sync {value}")
    def sync_step(context, ctx):
        context.calls.append(ctx.arg(0))

    @registry.step("async {value}")
    async def async_step(context, ctx):
        context.calls.append(ctx.arg(0))

    world = World()
    for line in ["sync one", "async two"]:
        match = registry.match(line)
        assert match is not None
        await match.execute(world)
    assert world.calls == ["one", "two"]


@pytest.mark.asyncio
async def test_execute_passes_context():
    seen = []
    registry = StepRegistry.from_mapping(
        {mapper("the {name} table"): lambda w, ctx: seen.append(ctx)}
    )
    table = DataTable(headers=("a",), rows=(("1",),))
    doc_string = DocString(content="text")
    location = SourceLocation("f.feature", 4)
    match = registry.match("the users table")
    assert match is not None
    await match.execute(
        None, table=table, doc_string=doc_string, location=location, resolved_args=["resolved"]
    )
    ctx = seen[0]
    assert ctx.args == ("resolved",)
    assert ctx.has_table and ctx.has_doc_string
    assert ctx.table_rows == [{"a": "1"}]
    assert ctx.doc_content == "text"
    assert ctx.location == location


def test_step_context_without_table():
    ctx = StepContext(args=("x",))
    assert ctx.first_arg == "x"
    assert not ctx.has_table
    with pytest.raises(ValueError):
        ctx.table_rows
    with pytest.raises(ValueError):
        ctx.doc_content


def test_merge_precedence():
    """Steps of the left registry win wherever they match."""
    left = StepRegistry.from_mapping({"I {verb} it": lambda context, ctx: "left"})
    right = StepRegistry.from_mapping(
        {"I see it": lambda context, ctx: "right", "only right": lambda context, ctx: "right"}
    )
    merged = left.merge(right)
    assert len(merged) == 3
    for line in ["I see it", "I do it"]:
        expected = left.match(line)
        match = merged.match(line)
        assert expected is not None and match is not None
        assert match.function is expected.function
        assert match.params == expected.params
    only_right = merged.match("only right")
    assert only_right is not None
    assert only_right.function(None, StepContext()) == "right"
    assert len(left) == 1


def test_suggest_placeholder():
    suggestion = StepRegistry.suggest_placeholder('I wait 5 seconds for "alice" and "bob"')
    assert "# Missing step: I wait 5 seconds for \"alice\" and \"bob\"" in suggestion
    assert (
        "@registry.step('I wait {number} seconds for \"{text}\" and \"{text2}\"', "
        'types={"number": int})'
    ) in suggestion
    assert "    number = ctx.arg(0)" in suggestion
    assert "    text = ctx.arg(1)" in suggestion
    assert "    text2 = ctx.arg(2)" in suggestion
    assert "async def step_impl(context, ctx):" in suggestion


def test_suggest_placeholder_without_params():
    suggestion = StepRegistry.suggest_placeholder("the app is running")
    assert "@registry.step('the app is running')" in suggestion
    assert "ctx.arg" not in suggestion
