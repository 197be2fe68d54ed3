import pytest

from stepflash.pins import (
    OUTPUT,
    MotorInterface,
    PinDriver,
    RecordingGpio,
    phase_mask,
)


def test_interface_values_match_pin_selection_numbers():
    assert MotorInterface(4) is MotorInterface.FULL4WIRE
    assert MotorInterface(8) is MotorInterface.HALF4WIRE
    assert MotorInterface(6) is MotorInterface.HALF3WIRE


def test_full4wire_phase_sequence():
    masks = [phase_mask(MotorInterface.FULL4WIRE, s) for s in range(4)]
    assert masks == [0b0101, 0b0110, 0b1010, 0b1001]


def test_half4wire_phase_sequence():
    masks = [phase_mask(MotorInterface.HALF4WIRE, s) for s in range(8)]
    assert masks == [0b0001, 0b0101, 0b0100, 0b0110, 0b0010, 0b1010, 0b1000, 0b1001]


def test_full2wire_and_three_wire_sequences():
    assert [phase_mask(2, s) for s in range(4)] == [0b10, 0b11, 0b01, 0b00]
    assert [phase_mask(3, s) for s in range(3)] == [0b100, 0b001, 0b010]
    assert [phase_mask(6, s) for s in range(6)] == [
        0b100, 0b101, 0b001, 0b011, 0b010, 0b110,
    ]


@pytest.mark.parametrize("interface", [2, 3, 4, 6, 8])
def test_phase_sequence_is_periodic(interface):
    period = {2: 4, 3: 3, 4: 4, 6: 6, 8: 8}[interface]
    for step in range(20):
        assert phase_mask(interface, step) == phase_mask(interface, step + period)


def test_negative_steps_wrap_for_power_of_two_interfaces():
    assert phase_mask(4, -1) == phase_mask(4, 3)
    assert phase_mask(8, -3) == phase_mask(8, 5)


def test_negative_steps_on_three_wire_have_no_phase():
    assert phase_mask(3, -1) is None
    assert phase_mask(6, -5) is None
    assert phase_mask(6, -6) == phase_mask(6, 0)


@pytest.mark.parametrize("interface", [0, 1])
def test_phase_mask_rejects_non_coil_interfaces(interface):
    with pytest.raises(ValueError):
        phase_mask(interface, 0)


def test_phase_mask_rejects_unknown_interface():
    with pytest.raises(ValueError):
        phase_mask(5, 0)


@pytest.mark.parametrize(
    "interface, count",
    [(0, 2), (1, 2), (2, 2), (3, 3), (4, 4), (6, 3), (8, 4)],
)
def test_pin_count(interface, count):
    driver = PinDriver(interface, [10, 11, 12, 13], RecordingGpio())
    assert driver.pin_count() == count


def test_too_many_pins_rejected():
    with pytest.raises(ValueError):
        PinDriver(4, [1, 2, 3, 4, 5], RecordingGpio())


def test_set_output_pins_writes_each_bit():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.FULL4WIRE, [10, 11, 12, 13], gpio)
    driver.set_output_pins(0b0101)
    assert gpio.writes == [(10, True), (11, False), (12, True), (13, False)]


def test_set_output_pins_only_touches_used_pins():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.DRIVER, [10, 11, 12, 13], gpio)
    driver.set_output_pins(0b1111)
    assert set(gpio.levels) == {10, 11}


def test_inversion_flips_levels():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.FULL4WIRE, [10, 11, 12, 13], gpio)
    driver.set_pin_inversions(True, False, True, False, False)
    driver.set_output_pins(0b0101)
    assert gpio.levels == {10: False, 11: False, 12: False, 13: False}


def test_driver_inversion_maps_step_and_direction():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.DRIVER, [10, 11], gpio)
    driver.set_pins_inverted(direction_invert=True, step_invert=False)
    driver.set_output_pins(0)
    assert gpio.levels == {10: False, 11: True}


def test_enable_outputs_sets_modes():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.FULL3WIRE, [10, 11, 12, 13], gpio)
    driver.enable_outputs()
    assert gpio.modes == {10: OUTPUT, 11: OUTPUT, 12: OUTPUT}


def test_function_interface_touches_no_pins():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.FUNCTION, [10, 11], gpio)
    driver.enable_outputs()
    driver.disable_outputs()
    assert gpio.modes == {} and gpio.writes == []


def test_enable_pin_asserted_and_released():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.DRIVER, [10, 11], gpio)
    driver.set_enable_pin(20)
    assert gpio.levels[20] is True
    assert gpio.modes[20] == OUTPUT
    driver.disable_outputs()
    assert gpio.levels == {10: False, 11: False, 20: False}


def test_enable_pin_inverted():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.DRIVER, [10, 11], gpio)
    driver.set_pins_inverted(enable_invert=True)
    driver.set_enable_pin(20)
    assert gpio.levels[20] is False
    driver.enable_outputs()
    assert gpio.levels[20] is False
    driver.disable_outputs()
    assert gpio.levels[20] is True


def test_unused_enable_pin_writes_nothing():
    gpio = RecordingGpio()
    driver = PinDriver(MotorInterface.DRIVER, [10, 11], gpio)
    driver.set_enable_pin(0xFF)
    assert driver.enable_pin is None
    assert gpio.writes == []