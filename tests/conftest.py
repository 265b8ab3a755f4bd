"""
Shared machine fixtures for diagram tests.

Each fixture builds a MachineModel from an inline configuration dict through
the loader, the same path YAML files take:
- dragon_mood:          guards, loopback, event action, before/after callbacks
- troll_regeneration:   several sources sharing one target
- character_status:     'all except' matcher, if/unless guards, final state
- mage_concentration:   human readable names
- nil_state_machine:    the null state
"""

import pytest

from statemachine_diagram.core.loader import machine_from_config


DRAGON_MOOD = {
    'owner': 'Dragon',
    'name': 'mood',
    'initial': 'sleeping',
    'states': ['sleeping', 'hunting', 'hoarding', 'rampaging'],
    'events': {
        'wake_up': [
            {'from': 'sleeping', 'to': 'hunting', 'if': 'hungry'},
            {'from': 'sleeping', 'to': 'hoarding', 'unless': 'hungry'},
        ],
        'find_treasure': [
            {'from': 'hunting', 'to': 'hoarding'},
            {'from': 'hoarding'},
        ],
        'enrage': {
            'action': 'roar',
            'transitions': [{'from': ['hunting', 'hoarding'], 'to': 'rampaging'}],
        },
        'exhaust': [
            {'from': 'rampaging', 'to': 'sleeping'},
        ],
    },
    'callbacks': {
        'before': [{'do': 'stretch_wings', 'on': 'wake_up'}],
        'after': [{'do': ['count_gold'], 'on': 'find_treasure', 'to': 'hoarding'}],
    },
}

TROLL_REGENERATION = {
    'owner': 'Troll',
    'name': 'regeneration',
    'initial': 'normal',
    'states': ['normal', 'accelerated', 'berserk', 'suppressed'],
    'events': {
        'take_fire_damage': [
            {'from': ['normal', 'accelerated', 'berserk'], 'to': 'suppressed'},
        ],
        'accelerate': [
            {'from': 'normal', 'to': 'accelerated', 'if': 'wounded?'},
        ],
        'rage': [
            {'from': 'accelerated', 'to': 'berserk', 'unless': 'calm'},
        ],
        'recover': [
            {'from': 'suppressed', 'to': 'normal'},
        ],
    },
}

CHARACTER_STATUS = {
    'owner': 'Character',
    'name': 'status',
    'initial': 'idle',
    'states': ['idle', 'combat', 'casting', 'resting', 'dead'],
    'events': {
        'engage': [
            {'from': 'idle', 'to': 'combat', 'if': 'can_fight'},
            {'from': 'resting', 'to': 'combat', 'if': 'interrupt_rest'},
        ],
        'cast_spell': [
            {'from': 'combat', 'to': 'casting', 'unless': 'spell_locked'},
        ],
        'finish_casting': [
            {'from': 'casting', 'to': 'combat'},
        ],
        'rest': [
            {'from': 'idle', 'to': 'resting', 'if': 'safe', 'unless': 'in_danger'},
        ],
        'die': [
            {'from': {'except': 'dead'}, 'to': 'dead'},
        ],
    },
    'callbacks': {
        'before': [{'do': 'focus_mind', 'on': 'cast_spell'}],
        'after': [{'do': 'play_death_animation', 'on': 'die'}],
        'around': [{'do': 'track_combat', 'on': 'engage'}],
    },
}

MAGE_CONCENTRATION = {
    'owner': 'Mage',
    'name': 'concentration',
    'initial': 'focused',
    'states': [
        {'name': 'focused', 'human_name': 'Deeply Focused'},
        'distracted',
    ],
    'events': {
        'distract': {
            'human_name': 'Get Distracted',
            'transitions': [{'from': 'focused', 'to': 'distracted'}],
        },
        'refocus': [
            {'from': 'distracted', 'to': 'focused'},
        ],
    },
}

NIL_STATE_MACHINE = {
    'owner': 'Anonymous',
    'name': 'status',
    'initial': None,
    'states': [None, 'active'],
    'events': {
        'activate': [{'from': None, 'to': 'active'}],
    },
}


@pytest.fixture
def dragon_mood():
    return machine_from_config(DRAGON_MOOD)


@pytest.fixture
def troll_regeneration():
    return machine_from_config(TROLL_REGENERATION)


@pytest.fixture
def character_status():
    return machine_from_config(CHARACTER_STATUS)


@pytest.fixture
def mage_concentration():
    return machine_from_config(MAGE_CONCENTRATION)


@pytest.fixture
def nil_state_machine():
    return machine_from_config(NIL_STATE_MACHINE)
