from textwrap import dedent

from behave import given, then, when

from features.steps.cli_env import BddContext

CALCULATOR_STEPS = dedent(
    """\
    from ly_bdd.registry import StepRegistry

    registry = StepRegistry()


    @registry.given("a calculator")
    def calculator(context, ctx):
        context.result = 0


    @registry.when("I add {a} and {b}", types={"a": int, "b": int})
    def add(context, ctx):
        context.result = ctx.arg(0) + ctx.arg(1)


    @registry.then("the result is {value}", types={"value": int})
    def result(context, ctx):
        assert context.result == ctx.arg(0), f"got {context.result}"
    """
)


@given("a new project")
def step_new_project(context: BddContext):
    context.bdd.project_files["pyproject.toml"] = '[tool.bdd]\nsteps = "steps.py:registry"\n'


@given("there is no project file")
def step_no_project(_context: BddContext):
    pass


@given("the calculator steps")
def step_calculator_steps(context: BddContext):
    context.bdd.project_files["steps.py"] = CALCULATOR_STEPS


@given('the feature file "{rel_path}"')
def step_feature_file(context: BddContext, rel_path: str):
    context.bdd.project_files[rel_path] = dedent(context.text) + "\n"


@given('the project configuration')
def step_project_configuration(context: BddContext):
    pyproject = context.bdd.project_files.get("pyproject.toml", "[tool.bdd]\n")
    context.bdd.project_files["pyproject.toml"] = f"{pyproject}{dedent(context.text)}\n"


@given('the environment variable {name} is "{value}"')
def step_environment_variable(context: BddContext, name: str, value: str):
    context.bdd.set_env(name, value)


@when('I run ly-bdd with "{args}"')
def step_run_bdd(context: BddContext, args: str):
    context.result = context.bdd.run(*args.split())


@then("the exit code is {exit_code}")
def step_exit_code(context: BddContext, exit_code: str):
    assert context.result
    assert context.result.exit_code == int(exit_code), context.result.output


@then("the output contains the text")
def step_output_contains_text(context: BddContext):
    assert context.result
    assert context.text.strip() in context.result.output, context.result.output


@then('the output contains "{message}"')
def step_output_contains_message(context: BddContext, message: str):
    assert context.result
    assert message in context.result.output, context.result.output


@then('the output does not contain "{message}"')
def step_output_does_not_contain_message(context: BddContext, message: str):
    assert context.result
    assert message not in context.result.output, context.result.output


@then('the file "{rel_path}" exists')
def step_file_exists(context: BddContext, rel_path: str):
    assert (context.bdd.project_dir / rel_path).is_file()


@then('the file "{rel_path}" contains "{message}"')
def step_file_contains(context: BddContext, rel_path: str, message: str):
    content = (context.bdd.project_dir / rel_path).read_text(encoding="utf8")
    assert message in content, content
