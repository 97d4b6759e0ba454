"""
Integration tests for CombatEngine (tactics/engine.py): lifecycle,
horror, visibility, flight, allegiance, snapshots, grappling, charges,
movement, held actions and bleeding.
"""

import json
import unittest

from tactics import (
    DEFAULT_RULES,
    CombatEngine,
    Combatant,
    DefenseKind,
    GrappleStatus,
    GridKind,
    HealthStatus,
    MoraleStatus,
    Outcome,
    Position,
    RulesConfig,
    ScriptedDice,
    Severity,
    Side,
    StatusEffect,
    TacticalMap,
    TerrainType,
    ValidationReason,
    Weapon,
)

BLADE = Weapon(name="Test Blade", damage="2d6+3")


def _pair(ally_kw=None, enemy_kw=None, faces=(), tmap=None):
    akw = dict(max_hp=20)
    akw.update(ally_kw or {})
    bkw = dict(max_hp=40)
    bkw.update(enemy_kw or {})
    a = Combatant(id="a", name="Aldric", side=Side.ALLY, **akw)
    b = Combatant(id="b", name="Brug", side=Side.ENEMY, **bkw)
    engine = CombatEngine([a, b], tactical_map=tmap, dice=ScriptedDice(list(faces)))
    return engine, a, b


def _square(width=10, height=10):
    return TacticalMap(width, height, grid=GridKind.SQUARE)


class TestLifecycle(unittest.TestCase):

    def test_start_rolls_initiative(self):
        engine, a, b = _pair(faces=[5, 15])
        encounter_id = engine.start_combat()
        self.assertTrue(encounter_id)
        self.assertEqual(engine.round, 1)
        self.assertIs(engine.current_actor(), b)
        self.assertIn("Combat begins", engine.event_log.messages()[0])

    def test_setup_errors(self):
        a = Combatant(id="x", name="A", side=Side.ALLY)
        b = Combatant(id="x", name="B", side=Side.ENEMY)
        with self.assertRaises(ValueError):
            CombatEngine([a, b])

        tmap = TacticalMap(5, 5, grid=GridKind.SQUARE)
        a = Combatant(id="a", name="A", side=Side.ALLY, position=Position(1, 1))
        b = Combatant(id="b", name="B", side=Side.ENEMY, position=Position(1, 1))
        with self.assertRaises(ValueError):
            CombatEngine([a, b], tactical_map=tmap)

        off = Combatant(id="c", name="C", side=Side.ALLY, position=Position(9, 9))
        with self.assertRaises(ValueError):
            CombatEngine([off], tactical_map=TacticalMap(5, 5))

    def test_regeneration_each_round(self):
        engine, a, b = _pair(enemy_kw={"regeneration": 3, "current_hp": 30}, faces=[15, 5])
        engine.start_combat()
        a.set_actions(0)
        b.set_actions(0)
        engine.end_turn()
        self.assertEqual(engine.round, 2)
        self.assertEqual(b.current_hp, 33)

    def test_mutations_ignored_after_end(self):
        engine, a, b = _pair(faces=[15, 5])
        engine.start_combat()
        engine.flee_off_map(b)
        self.assertEqual(engine.outcome, Outcome.VICTORY)
        self.assertIsNone(engine.apply_damage(a, 5))
        self.assertIsNone(engine.heal(a, 5))
        self.assertIsNone(engine.spend_action(a))
        self.assertEqual(a.current_hp, 20)


class TestHorror(unittest.TestCase):

    def test_failed_save_frightens(self):
        engine, a, b = _pair(enemy_kw={"horror_factor": 12}, faces=[15, 5, 10, 1])
        engine.start_combat()
        self.assertTrue(a.has_status(StatusEffect.FRIGHTENED))
        self.assertTrue(engine.event_log.with_severity(Severity.WARNING))
        self.assertEqual(engine.dice.remaining(), 0)

    def test_passed_save(self):
        engine, a, b = _pair(enemy_kw={"horror_factor": 12}, faces=[15, 5, 14])
        engine.start_combat()
        self.assertFalse(a.has_status(StatusEffect.FRIGHTENED))

    def test_fearless_fighters_skip_the_roll(self):
        engine, a, b = _pair(ally_kw={"fear_immune": True}, enemy_kw={"horror_factor": 12}, faces=[15, 5])
        engine.start_combat()
        self.assertFalse(a.has_status(StatusEffect.FRIGHTENED))
        self.assertEqual(engine.dice.remaining(), 0)


class TestVisibility(unittest.TestCase):

    def test_wall_hides_enemy(self):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        for y in range(10):
            tmap.set_terrain(5, y, TerrainType.WALL)
        engine, a, b = _pair(ally_kw={"position": Position(2, 5)}, enemy_kw={"position": Position(8, 5)},
                             faces=[15, 5], tmap=tmap)
        engine.start_combat()
        view = engine.world_view(Side.ALLY)
        self.assertEqual(view.enemies, ())
        self.assertEqual([v.id for v in view.allies], ["a"])
        self.assertFalse(engine.can_see(a, b))

    def test_open_ground(self):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        engine, a, b = _pair(ally_kw={"position": Position(2, 5)}, enemy_kw={"position": Position(8, 5)},
                             faces=[15, 5], tmap=tmap)
        engine.start_combat()
        self.assertEqual([v.id for v in engine.world_view(Side.ALLY).enemies], ["b"])


class TestFlight(unittest.TestCase):

    def test_take_off_climb_and_land(self):
        engine, a, b = _pair(ally_kw={"can_fly": True, "actions_per_round": 3, "position": Position(0, 0)})
        engine.take_off(a)
        self.assertTrue(a.is_flying)
        self.assertEqual(a.altitude, 20)
        engine.change_altitude(a, 50)
        self.assertEqual(a.altitude, 70)
        engine.land(a)
        self.assertFalse(a.is_flying)
        self.assertEqual(a.altitude, 0)
        self.assertEqual(a.actions_remaining, 0)

    def test_grounded_fighter_cannot_take_off(self):
        engine, a, b = _pair()
        result = engine.take_off(a)
        self.assertFalse(result.success)
        self.assertEqual(a.actions_remaining, a.actions_per_round)

    def test_knocked_out_flyer_falls(self):
        engine, a, b = _pair(enemy_kw={"can_fly": True, "max_hp": 10, "position": Position(0, 0, 30)},
                             faces=[1, 1, 1])
        b.flight.is_flying = True
        engine.apply_damage(b, 12)
        self.assertFalse(b.is_flying)
        self.assertEqual(b.altitude, 0)
        self.assertEqual(b.current_hp, -5)
        self.assertEqual(engine.outcome, Outcome.VICTORY)


class TestAllegianceAndHealing(unittest.TestCase):

    def test_set_side(self):
        engine, a, b = _pair()
        c = Combatant(id="c", name="Cora", side=Side.ENEMY, max_hp=10)
        engine = CombatEngine([a, b, c], dice=ScriptedDice([]))
        c.memory.tag("a", "turncoat")
        self.assertFalse(engine.set_side(a, Side.ALLY))
        self.assertTrue(engine.set_side(c, Side.ALLY))
        self.assertEqual(c.side, Side.ALLY)
        self.assertFalse(c.memory.has_tag("a", "turncoat"))
        self.assertFalse(engine.is_combat_ended())

    def test_heal_wakes_the_fallen(self):
        engine, a, b = _pair(ally_kw={"current_hp": -3})
        self.assertEqual(a.health_status, HealthStatus.UNCONSCIOUS)
        self.assertEqual(engine.heal(a, 5), 5)
        self.assertEqual(a.current_hp, 2)
        self.assertTrue(any("regains consciousness" in m for m in engine.event_log.messages()))


class TestReporting(unittest.TestCase):

    def test_snapshot_is_json(self):
        engine, a, b = _pair(faces=[15, 5])
        engine.start_combat()
        snap = engine.snapshot()
        self.assertEqual(snap["round"], 1)
        self.assertEqual(snap["actor"], "a")
        self.assertEqual(len(snap["combatants"]), 2)
        self.assertIsNone(snap["outcome"])
        json.dumps(snap)

    def test_summary_shows_outcome(self):
        engine, a, b = _pair(faces=[15, 5])
        engine.start_combat()
        engine.flee_off_map(b)
        summary = engine.get_combat_summary()
        self.assertIn("Brug [enemy]", summary)
        self.assertIn("FLED", summary)
        self.assertIn("Outcome: victory", summary)

class TestRulesWiring(unittest.TestCase):

    def test_fighters_share_the_default_rules(self):
        c = Combatant(id="x", name="X")
        self.assertIs(c.rules, DEFAULT_RULES)
        self.assertNotIn("rules=", repr(c))

    def test_engine_rules_reach_every_fighter(self):
        rules = RulesConfig.from_dict({"bleed_per_round": 2})
        a = Combatant(id="a", name="Aldric", side=Side.ALLY)
        b = Combatant(id="b", name="Brug", side=Side.ENEMY)
        CombatEngine([a, b], rules=rules, dice=ScriptedDice([]))
        self.assertIs(a.rules, rules)
        self.assertIs(b.rules, rules)
        self.assertIs(Combatant(id="y", name="Y").rules, DEFAULT_RULES)

    def test_pair_overrides_default_hit_points(self):
        engine, a, b = _pair(ally_kw={"max_hp": 12}, enemy_kw={"max_hp": 10})
        self.assertEqual(a.max_hp, 12)
        self.assertEqual(b.max_hp, 10)


class TestGrappling(unittest.TestCase):

    def test_clinch_then_takedown(self):
        """15 vs 5 clinches; 16 beats the takedown target and 1d6 rolls 4."""
        engine, a, b = _pair(faces=[15, 5, 16, 4])
        result = engine.attempt_grapple(a, b)
        self.assertTrue(result.success)
        self.assertEqual(a.grapple.status, GrappleStatus.CLINCH)
        self.assertEqual(a.actions_remaining, 1)

        result = engine.grapple_action(a, "takedown")
        self.assertTrue(result.success)
        self.assertEqual(result.damage, 4)
        self.assertEqual(b.current_hp, 36)
        self.assertEqual(b.grapple.status, GrappleStatus.GROUND)
        self.assertTrue(b.has_status(StatusEffect.PRONE))
        self.assertEqual(a.actions_remaining, 0)
        self.assertEqual(engine.dice.remaining(), 0)

    def test_release_clears_prone(self):
        engine, a, b = _pair(ally_kw={"actions_per_round": 3}, faces=[15, 5, 16, 4])
        engine.attempt_grapple(a, b)
        engine.grapple_action(a, "takedown")
        result = engine.grapple_action(a, "release")
        self.assertTrue(result.success)
        self.assertTrue(b.grapple.is_neutral)
        self.assertFalse(b.has_status(StatusEffect.PRONE))

    def test_grapple_needs_an_adjacent_foe(self):
        engine, a, b = _pair(ally_kw={"position": Position(1, 1)}, enemy_kw={"position": Position(4, 1)},
                             tmap=_square())
        result = engine.attempt_grapple(a, b)
        self.assertFalse(result.success)
        self.assertIn("not adjacent", result.message)
        self.assertEqual(a.actions_remaining, 1)

    def test_grapple_action_without_a_hold(self):
        engine, a, b = _pair()
        result = engine.grapple_action(a, "pin")
        self.assertFalse(result.success)
        self.assertIn("not grappling", result.message)

    def test_knockout_breaks_the_hold(self):
        engine, a, b = _pair(faces=[15, 5])
        engine.attempt_grapple(a, b)
        self.assertEqual(b.grapple.status, GrappleStatus.CLINCH)
        engine.apply_damage(b, 45)
        self.assertTrue(a.grapple.is_neutral)
        self.assertTrue(b.grapple.is_neutral)
        self.assertEqual(b.actions_remaining, 0)
        self.assertEqual(engine.outcome, Outcome.VICTORY)


class TestCharge(unittest.TestCase):

    def test_charge_closes_and_hits_harder(self):
        """Strike 15, failed parry 3, 2d6+3 on 4 and 5 gives 12, x1.5 for the charge."""
        engine, a, b = _pair(ally_kw={"weapons": [BLADE], "position": Position(0, 0)},
                             enemy_kw={"position": Position(5, 0)}, faces=[15, 3, 4, 5], tmap=_square())
        outcome = engine.charge(a, b, BLADE)
        self.assertTrue(outcome.hit)
        self.assertEqual(a.position.cell, (4, 0))
        self.assertEqual(outcome.damage, 18)
        self.assertEqual(b.current_hp, 22)
        self.assertEqual(a.actions_remaining, 1)

    def test_no_charge_lane(self):
        tmap = _square()
        for x, y in tmap.get_neighbors(5, 5):
            tmap.set_terrain(x, y, TerrainType.WALL)
        engine, a, b = _pair(ally_kw={"weapons": [BLADE], "position": Position(0, 5)},
                             enemy_kw={"position": Position(5, 5)}, tmap=tmap)
        outcome = engine.charge(a, b, BLADE)
        self.assertEqual(outcome.error.reason, ValidationReason.OUT_OF_RANGE)
        self.assertEqual(a.position.cell, (0, 5))
        self.assertEqual(a.actions_remaining, 1)


class TestRest(unittest.TestCase):

    def test_light_rest(self):
        engine, a, b = _pair()
        a.fatigue.stamina = 10.0
        self.assertEqual(engine.rest(a), 1.0)
        self.assertEqual(a.fatigue.stamina, 11.0)
        self.assertTrue(a.fatigue.rested_this_round)
        self.assertEqual(a.actions_remaining, 1)

    def test_full_rest_takes_the_whole_budget(self):
        engine, a, b = _pair()
        a.fatigue.stamina = 10.0
        self.assertEqual(engine.rest(a, full=True), 2.0)
        self.assertEqual(a.actions_remaining, 0)
        self.assertIsNone(engine.rest(a))


class TestMovement(unittest.TestCase):

    def _engine(self, ally_kw=None, faces=()):
        akw = {"position": Position(1, 1)}
        akw.update(ally_kw or {})
        return _pair(ally_kw=akw, enemy_kw={"position": Position(2, 1)}, faces=faces, tmap=_square())

    def test_moving_to_own_cell_is_illegal(self):
        engine, a, b = self._engine()
        self.assertFalse(engine.move_to(a, 1, 1))
        self.assertEqual(a.actions_remaining, 1)
        self.assertTrue(any("already at" in m for m in engine.event_log.messages()))

    def test_player_keeps_action_on_rejected_move(self):
        engine, a, b = self._engine({"is_ai": False})
        self.assertFalse(engine.move_to(a, 1, 1))
        self.assertEqual(a.actions_remaining, a.actions_per_round)

    def test_grappled_fighter_cannot_move(self):
        engine, a, b = self._engine(faces=[15, 5])
        self.assertTrue(engine.attempt_grapple(a, b).success)
        self.assertFalse(engine.move_to(b, 6, 1))
        self.assertEqual(b.position.cell, (2, 1))
        self.assertTrue(any("held in a grapple" in m for m in engine.event_log.messages()))

    def test_distance_beyond_allowance(self):
        engine, a, b = _pair(ally_kw={"is_ai": False, "position": Position(0, 0)},
                             enemy_kw={"position": Position(8, 8)}, tmap=_square())
        self.assertFalse(engine.move_to(a, 9, 0))
        self.assertFalse(engine.move_to(a, 9, 0, mode="run"))
        self.assertEqual(a.position.cell, (0, 0))
        self.assertEqual(a.actions_remaining, 2)
        self.assertTrue(engine.move_to(a, 9, 0, mode="sprint"))
        self.assertEqual(a.position.cell, (9, 0))
        self.assertEqual(a.actions_remaining, 0)

    def test_flyers_pay_cruise_stamina(self):
        engine, a, b = _pair(ally_kw={"can_fly": True, "actions_per_round": 3, "position": Position(0, 0)},
                             enemy_kw={"position": Position(0, 5)}, tmap=_square())
        engine.take_off(a)
        before = a.fatigue.stamina
        self.assertTrue(engine.move_to(a, 3, 0))
        self.assertAlmostEqual(before - a.fatigue.stamina, DEFAULT_RULES.stamina_costs["fly_cruise"])
        before = b.fatigue.stamina
        self.assertTrue(engine.move_to(b, 0, 7))
        self.assertAlmostEqual(before - b.fatigue.stamina, DEFAULT_RULES.stamina_costs["light"])


class TestTurnInvariant(unittest.TestCase):

    def test_current_actor_always_has_an_action(self):
        a = Combatant(id="a", name="A", side=Side.ALLY, actions_per_round=3)
        c = Combatant(id="c", name="C", side=Side.ALLY, actions_per_round=1)
        b = Combatant(id="b", name="B", side=Side.ENEMY)
        d = Combatant(id="d", name="D", side=Side.ENEMY)
        # Four initiative rolls, then B's morale check when D goes down.
        engine = CombatEngine([a, b, c, d], dice=ScriptedDice([15, 12, 9, 6, 2]))
        engine.start_combat()
        rounds_seen = set()
        for step in range(24):
            actor = engine.current_actor()
            self.assertIsNotNone(actor)
            self.assertTrue(actor.can_act)
            self.assertGreaterEqual(actor.actions_remaining, 1)
            rounds_seen.add(engine.round)
            engine.spend_action(actor, actor.actions_remaining if step % 3 == 0 else 1)
            if step == 5:
                engine.apply_damage(d, 25)
            engine.end_turn()
        self.assertGreaterEqual(len(rounds_seen), 3)
        self.assertFalse(engine.is_combat_ended())
        self.assertEqual(engine.dice.remaining(), 0)


class TestFearImmunity(unittest.TestCase):

    def test_fearless_ignore_every_trigger(self):
        a = Combatant(id="a", name="Aldric", side=Side.ALLY, fear_immune=True)
        c = Combatant(id="c", name="Cora", side=Side.ALLY, fear_immune=True)
        b = Combatant(id="b", name="Brug", side=Side.ENEMY, max_hp=40, horror_factor=14)
        engine = CombatEngine([a, b, c], dice=ScriptedDice([15, 10, 5]))
        engine.start_combat()
        engine.apply_damage(a, 17)
        engine.apply_damage(c, 25)
        self.assertEqual(a.morale.status, MoraleStatus.STEADY)
        for status in (StatusEffect.FRIGHTENED, StatusEffect.HESITANT, StatusEffect.FLEEING):
            self.assertFalse(a.has_status(status))
        self.assertEqual(engine.dice.remaining(), 0)
        messages = engine.event_log.messages()
        self.assertTrue(any("unmoved by Brug" in m for m in messages))
        self.assertEqual(sum("fearless" in m for m in messages), 2)


class TestTerrifyingBlows(unittest.TestCase):

    def test_critical_hit_raises_horror_factor(self):
        """A natural 20 makes HF 10 count as 12: a save of 11 now fails."""
        engine, a, b = _pair(enemy_kw={"weapons": [BLADE], "horror_factor": 10}, faces=[20, 1, 1, 11, 1])
        outcome = engine.attack(b, a, BLADE, defense=DefenseKind.NONE)
        self.assertTrue(outcome.critical)
        self.assertEqual(a.current_hp, 10)
        self.assertTrue(a.has_status(StatusEffect.FRIGHTENED))
        self.assertTrue(any("vs HF 12" in m for m in engine.event_log.messages()))
        self.assertEqual(engine.dice.remaining(), 0)

    def test_ordinary_hit_uses_base_factor(self):
        engine, a, b = _pair(enemy_kw={"weapons": [BLADE], "horror_factor": 10}, faces=[15, 1, 1, 11])
        engine.attack(b, a, BLADE, defense=DefenseKind.NONE)
        self.assertFalse(a.has_status(StatusEffect.FRIGHTENED))
        self.assertTrue(any("vs HF 10" in m for m in engine.event_log.messages()))
        self.assertEqual(engine.dice.remaining(), 0)


class TestHeldActions(unittest.TestCase):

    def test_held_attack_springs_when_a_foe_closes(self):
        """Strike 15, parry 2 fails, 2d6+3 on 3 and 4 deals 10."""
        engine, a, b = _pair(ally_kw={"weapons": [BLADE], "position": Position(1, 1)},
                             enemy_kw={"position": Position(6, 1)}, faces=[15, 2, 3, 4], tmap=_square())
        self.assertTrue(engine.hold_action(a))
        self.assertEqual(a.actions_remaining, 1)
        self.assertTrue(engine.snapshot()["combatants"][0]["holding"])

        self.assertTrue(engine.move_to(b, 2, 1))
        self.assertEqual(b.current_hp, 30)
        self.assertEqual(a.actions_remaining, 1)
        self.assertEqual(b.actions_remaining, 0)
        self.assertNotIn("a", engine.holds)
        self.assertEqual(engine.dice.remaining(), 0)

    def test_out_of_reach_keeps_the_hold(self):
        engine, a, b = _pair(ally_kw={"weapons": [BLADE], "position": Position(1, 1)},
                             enemy_kw={"position": Position(8, 1)}, tmap=_square())
        engine.hold_action(a)
        self.assertTrue(engine.move_to(b, 5, 1))
        self.assertIn("a", engine.holds)
        self.assertEqual(b.current_hp, 40)

    def test_hold_lapses_at_the_next_round(self):
        engine, a, b = _pair(faces=[15, 5])
        engine.start_combat()
        self.assertTrue(engine.hold_action(a))
        self.assertFalse(engine.hold_action(a))
        self.assertEqual(a.actions_remaining, 0)
        b.set_actions(0)
        engine.end_turn()
        self.assertEqual(engine.round, 2)
        self.assertEqual(engine.holds, {})
        self.assertTrue(any("lapses" in m for m in engine.event_log.messages()))


class TestBleeding(unittest.TestCase):

    def _party(self, faces=(15, 10, 5)):
        a = Combatant(id="a", name="Aldric", side=Side.ALLY, fear_immune=True)
        w = Combatant(id="w", name="Wren", side=Side.ALLY)
        b = Combatant(id="b", name="Brug", side=Side.ENEMY, max_hp=40)
        engine = CombatEngine([a, w, b], dice=ScriptedDice(list(faces)))
        return engine, a, w, b

    def test_downed_fighter_bleeds_each_round(self):
        engine, a, w, b = self._party()
        engine.start_combat()
        engine.apply_damage(w, 23)
        self.assertTrue(w.has_status(StatusEffect.BLEEDING))
        self.assertEqual(w.actions_remaining, 0)
        a.set_actions(0)
        b.set_actions(0)
        engine.end_turn()
        self.assertEqual(engine.round, 2)
        self.assertEqual(w.current_hp, -4)
        self.assertEqual(w.actions_remaining, 0)
        self.assertTrue(any("bleeds for 1" in m for m in engine.event_log.messages()))

    def test_healing_stops_the_bleeding(self):
        engine, a, w, b = self._party()
        engine.apply_damage(w, 23)
        engine.heal(w, 6)
        self.assertEqual(w.current_hp, 3)
        self.assertFalse(w.has_status(StatusEffect.BLEEDING))

    def test_stabilized_fighter_stops_losing_blood(self):
        engine, a, w, b = self._party()
        engine.start_combat()
        engine.apply_damage(w, 23)
        w.clear_status(StatusEffect.BLEEDING)
        w.apply_status(StatusEffect.STABILIZED)
        a.set_actions(0)
        b.set_actions(0)
        engine.end_turn()
        self.assertEqual(w.current_hp, -3)

    def test_the_dead_do_not_bleed(self):
        engine, a, w, b = self._party()
        engine.apply_damage(w, 50)
        self.assertEqual(w.health_status, HealthStatus.DEAD)
        self.assertFalse(w.has_status(StatusEffect.BLEEDING))



if __name__ == "__main__":
    unittest.main()
