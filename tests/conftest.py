"""Shared DSL sources and helpers for the fsmdsl tests."""
import pytest

from fsmdsl import load_definition

TRAFFIC_LIGHT = 'fsm T { [*] --> Red  state Red  state Green  Red --> Green : go }'

REFERENCE = '''
fsm Name { [*] --> S1
  state S1: "desc" { entry / act() }
  state S2
  S1 --> S2 : evt [guard] / action()
  timer t = 500 -> Tick periodic
  choice C { [cond] -> S1 / a() [else] -> S2 }
}
'''

DOOR = '''
fsm Door {
  [*] --> Closed
  state Closed { exit / latch() }
  state Open { entry / light_on() }
  state Locked
  Closed --> Check : push / knock()
  Open --> Closed : close
  Locked --> Closed : unlock [has_key]
  choice Check {
    [is_locked] -> Locked / beep()
    [else] -> Open
  }
}
'''

BLINKER = '''
fsm Blinker {
  [*] --> Idle
  state Idle
  state Blinking { entry / start_timer(t) exit / stop_timer(t) }
  state Done
  timer t = 100 -> Tick periodic
  Idle --> Blinking : start
  Blinking --> Blinking : Tick [fast] / blink()
  Blinking --> Done : stop
}
'''

FLOW = '''
fsm Flow {
  [*] --> Start
  state Start
  state Middle { entry / m() }
  state End { entry / done() }
  Start --> Middle : go
  Middle --> End : / finish()
}
'''


@pytest.fixture
def traffic_light():
    return load_definition(TRAFFIC_LIGHT)


@pytest.fixture
def door():
    return load_definition(DOOR)


@pytest.fixture
def blinker():
    return load_definition(BLINKER)


@pytest.fixture
def flow():
    return load_definition(FLOW)
