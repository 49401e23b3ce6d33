from befunge import Direction, Vector


def test_addition_program(run_program):
    state, output, _ = run_program("94+.@")
    assert output == "13"
    assert state.halted
    assert state.stack == []


def test_single_halt(run_program):
    state, output, steps = run_program("@")
    assert state.halted
    assert steps == 1
    assert state.stack == []
    assert output == ""


def test_read_and_print(run_program):
    state, output, _ = run_program("&.@", input_text="42\n")
    assert output == "42"
    assert state.halted


def test_read_and_print_without_halt(run_program):
    state, output, steps = run_program("&.", input_text="42\n", max_steps=2)
    assert output == "42"
    assert steps == 2
    assert not state.halted


def test_string_mode_program(run_program):
    state, output, _ = run_program('"olleH",,,,,@')
    assert output == "Hello"
    assert state.stack == []


def test_string_mode_top_is_last_character(run_program):
    state, _, _ = run_program('"AB"@')
    assert state.stack == [ord("A"), ord("B")]


def test_bridge_skips_next_cell(run_program):
    state, output, _ = run_program("7#.@")
    assert output == ""
    assert state.stack == [7]
    assert state.halted


def test_bridge_skips_halt(run_program):
    state, output, _ = run_program("1#@.@")
    assert output == "1"
    assert state.halted


def test_empty_program_halts(run_program):
    state, output, steps = run_program("")
    assert state.halted
    assert steps == 1
    assert output == ""


def test_blank_program_halts(run_program):
    state, _, steps = run_program("\n\n")
    assert state.halted
    assert steps == 1


def test_wraps_west(run_program):
    state, output, _ = run_program("<@.7")
    assert output == "7"
    assert state.halted


def test_wraps_north(run_program):
    state, _, _ = run_program("^\n@\n5\n")
    assert state.stack == [5]
    assert state.halted


def test_ragged_rows_read_as_spaces(run_program):
    state, _, steps = run_program("v\n\n@")
    assert state.halted
    assert steps == 3


def test_horizontal_branch(run_program):
    state, output, _ = run_program("0_1.@")
    assert output == "1"

    state, output, _ = run_program("1_@")
    assert output == ""
    assert state.stack == [1]
    assert state.halted


def test_vertical_branch(run_program):
    source = "0|\n @\n"
    state, _, steps = run_program(source)
    assert state.halted
    assert state.position == Vector(1, 2)
    assert steps == 3


def test_random_direction(run_program):
    state, _, _ = run_program("?@\n@", directions=[Direction.EAST])
    assert state.position == Vector(2, 0)

    state, _, _ = run_program("?@\n@", directions=[Direction.SOUTH])
    assert state.position == Vector(0, 2)


def test_max_steps_stops_endless_loop(run_program):
    state, output, steps = run_program(">", max_steps=50)
    assert steps == 50
    assert not state.halted
    assert output == ""


def test_loop_counts_down(run_program):
    # Prints 3, 2, 1 then halts when the counter reaches zero
    source = "3>:.1-:v\n ^     _@\n"
    state, output, _ = run_program(source)
    assert output == "321"
    assert state.halted
    assert state.stack == [0]
