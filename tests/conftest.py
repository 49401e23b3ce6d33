import io

import pytest

import befunge


@pytest.fixture
def make_io():
    def factory(input_text="", directions=None):
        choose_direction = None
        if directions is not None:
            choices = iter(directions)
            choose_direction = lambda: next(choices)
        return befunge.ProgramIO(
            io.StringIO(input_text),
            io.StringIO(),
            io.StringIO(),
            choose_direction,
        )

    return factory


@pytest.fixture
def run_program(make_io):
    def run(source, input_text="", directions=None, max_steps=10_000):
        grid = befunge.Grid.parse(source)
        program_io = make_io(input_text, directions)
        state = befunge.State()
        steps = state.run(grid, program_io, max_steps)
        return state, program_io.output_stream.getvalue(), steps

    return run
