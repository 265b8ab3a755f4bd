"""
Tests for the machine model: matchers, state ordering, final state derivation
and callback matching.
"""
import pytest

from statemachine_diagram.core.model import (
    AllMatcher,
    BlacklistMatcher,
    Branch,
    Callback,
    Event,
    LoopbackMatcher,
    MachineModel,
    State,
    StateRequirement,
    WhitelistMatcher,
    humanize,
)


NAMES = ['idle', 'combat', 'casting', 'dead']


# ==============================================================================
# Matchers
# ==============================================================================

class TestMatchers:
    """Matcher filtering keeps the caller's ordering"""

    def test_all_matcher(self):
        """Test AllMatcher accepts every state and declares no values"""
        matcher = AllMatcher()
        assert matcher.filter(NAMES) == NAMES
        assert matcher.values == []

    def test_whitelist_matcher_filters_in_caller_order(self):
        """Test whitelist order does not leak into the filtered result"""
        matcher = WhitelistMatcher(['dead', 'idle'])
        assert matcher.filter(NAMES) == ['idle', 'dead']
        assert matcher.values == ['dead', 'idle']

    def test_blacklist_matcher(self):
        """Test 'all except' excludes only the listed states"""
        matcher = BlacklistMatcher(['dead'])
        assert matcher.filter(NAMES) == ['idle', 'combat', 'casting']
        assert not matcher.matches('dead')

    def test_loopback_matcher(self):
        """Test loopback matches a target equal to its source"""
        matcher = LoopbackMatcher()
        assert matcher.values == []
        assert matcher.matches('idle', from_state='idle')
        assert not matcher.matches('dead', from_state='idle')

    def test_whitelist_with_null_state(self):
        """Test the null state can be listed like any other state"""
        matcher = WhitelistMatcher([None])
        assert matcher.filter([None, 'active']) == [None]

    def test_empty_whitelist_matches_nothing(self):
        """Test an empty whitelist resolves to no states, distinct from the null state"""
        assert WhitelistMatcher([]).filter([None, 'active']) == []

    def test_matcher_equality(self):
        """Test matchers compare by kind and values"""
        assert WhitelistMatcher(['a']) == WhitelistMatcher(['a'])
        assert WhitelistMatcher(['a']) != BlacklistMatcher(['a'])
        assert AllMatcher() == AllMatcher()
        assert len({LoopbackMatcher(), LoopbackMatcher()}) == 1


# ==============================================================================
# States
# ==============================================================================

def test_humanize():
    """Test default human names replace underscores"""
    assert humanize('take_fire_damage') == 'take fire damage'
    assert humanize(None) == 'nil'


def test_state_defaults():
    """Test value defaults to the name and human name to the humanized name"""
    state = State('error_cleanup')
    assert state.value == 'error_cleanup'
    assert state.human_name() == 'error cleanup'
    assert State('dead', human='Dead').human_name() == 'Dead'


def test_states_by_priority_puts_initial_first():
    """Test the initial state sorts first, the rest keep declaration order"""
    machine = MachineModel(owner='Troll', name='regeneration',
                           states=[State('a'), State('b'), State('c')], initial='b')
    assert machine.state_names() == ['b', 'a', 'c']
    assert machine.state('b').initial


def test_initial_state_static_and_dynamic():
    """Test initial state resolution for a name and for a callable"""
    states = [State('day'), State('night')]
    static = MachineModel(owner='World', name='cycle', states=states, initial='night')
    assert static.initial_state().name == 'night'

    dynamic = MachineModel(owner='World', name='cycle', states=[State('day'), State('night')],
                           initial=lambda context: 'day' if context == 'noon' else 'night')
    assert dynamic.initial_state('noon').name == 'day'
    assert dynamic.initial_state('midnight').name == 'night'


def test_owner_name_from_class():
    """Test an owner class contributes its class name"""

    class Dragon:
        pass

    assert MachineModel(owner=Dragon, name='mood').owner_name == 'Dragon'


def test_is_final(character_status):
    """Test final is derived from the absence of outgoing transitions"""
    assert character_status.is_final(character_status.state('dead'))
    assert not character_status.is_final(character_status.state('idle'))


def test_is_final_explicit_flag():
    """Test an explicit final flag wins over derivation"""
    machine = MachineModel(owner='M', name='s', states=[State('a', final=True), State('b')])
    assert machine.is_final(machine.state('a'))
    assert machine.is_final(machine.state('b'))


def test_loopback_only_state_is_final():
    """Test a state whose only transitions loop back to itself is final"""
    requirement = StateRequirement(WhitelistMatcher(['hoarding']), LoopbackMatcher())
    machine = MachineModel(owner='Dragon', name='mood', states=[State('hoarding')],
                           events=[Event('find_treasure', [Branch([requirement])])])
    assert machine.is_final(machine.state('hoarding'))


# ==============================================================================
# Callbacks
# ==============================================================================

class TestCallbackMatching:
    """Callback applicability to a rendered requirement"""

    def test_callback_without_requirements_matches_any_pair(self):
        """Test a bare callback applies to every transition of matching events"""
        callback = Callback('before', ['log'])
        assert callback.matches(Branch(), ['idle'], ['combat'], 'engage')

    def test_event_matcher(self):
        """Test the event matcher must accept the event name"""
        callback = Callback('after', ['log'], event_matcher=WhitelistMatcher(['die']))
        assert callback.matches(Branch(), ['idle'], ['dead'], 'die')
        assert not callback.matches(Branch(), ['idle'], ['combat'], 'engage')

    def test_state_requirement_must_match_a_pair(self):
        """Test from/to requirements of the callback filter the pairs"""
        callback = Callback('after', ['count_gold'], state_requirements=[
            StateRequirement(AllMatcher(), WhitelistMatcher(['hoarding']))])
        assert callback.matches(Branch(), ['hunting'], ['hoarding'], 'find_treasure')
        assert not callback.matches(Branch(), ['hunting'], ['rampaging'], 'enrage')

    def test_loopback_requirement(self):
        """Test a loopback callback only matches when the target equals a source"""
        callback = Callback('before', ['polish'], state_requirements=[
            StateRequirement(AllMatcher(), LoopbackMatcher())])
        assert callback.matches(Branch(), ['hoarding'], ['hoarding'], 'find_treasure')
        assert not callback.matches(Branch(), ['hunting'], ['hoarding'], 'find_treasure')

    def test_concrete_pairs_restrict_matching(self):
        """Test given pairs are matched one by one instead of every from/to combination"""
        callback = Callback('before', ['a_to_b_only'], state_requirements=[
            StateRequirement(WhitelistMatcher(['a']), WhitelistMatcher(['b']))])
        assert callback.matches(Branch(), ['a', 'b'], ['a', 'b'], 'idle')
        assert not callback.matches(Branch(), ['a', 'b'], ['a', 'b'], 'idle',
                                    pairs=[('a', 'a'), ('b', 'b')])
        assert callback.matches(Branch(), ['a'], ['b'], 'go', pairs=[('a', 'b')])

    def test_empty_from_set_never_matches(self):
        """Test a requirement resolving to no source states matches nothing"""
        assert not Callback('before', ['log']).matches(Branch(), [], ['combat'], 'engage')

    def test_unknown_callback_type(self):
        """Test only before/after/around are accepted"""
        with pytest.raises(ValueError):
            Callback('during', ['log'])

    def test_methods_are_normalized(self):
        """Test callback methods become predicate references"""
        callback = Callback('after', ['log', None])
        assert [method.name for method in callback.methods] == ['log']
