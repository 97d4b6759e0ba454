import json
from typing import List

import streamlit as st

from tactics.ai import CombatAI, STRATEGY_DEFAULTS
from tactics.batch import BatchConfig, BatchRunner
from tactics.combatant import Combatant
from tactics.dice import DiceRoller
from tactics.encounters import ENCOUNTERS, open_field
from tactics.engine import CombatEngine
from tactics.enums import Outcome, Severity

st.set_page_config(page_title="Palladium Tactics: Encounter Runner", layout="wide")

SEVERITY_MARK = {
    Severity.INFO: "",
    Severity.WARNING: "⚠️ ",
    Severity.ERROR: "❌ ",
    Severity.CRITICAL: "☠️ ",
}


def new_engine(encounter: str, seed: int) -> CombatEngine:
    fighters: List[Combatant] = ENCOUNTERS[encounter]()
    engine = CombatEngine(fighters, tactical_map=open_field(), dice=DiceRoller(seed=seed))
    engine.start_combat()
    return engine


def render_map(engine: CombatEngine) -> str:
    tmap = engine.tactical_map
    rows = []
    for y in range(tmap.height):
        row = []
        for x in range(tmap.width):
            occ = tmap.occupant_at(x, y)
            tile = tmap.get_tile(x, y)
            if occ is not None:
                mark = occ.name[0].upper() if occ.side.value == "ally" else occ.name[0].lower()
                row.append(mark + ("^" if occ.is_flying else " "))
            elif not tile.passable:
                row.append("##")
            elif tile.move_cost > 1:
                row.append(", ")
            else:
                row.append(". ")
        rows.append("".join(row))
    return "\n".join(rows)


# --- Initialize session state ---
if "encounter" not in st.session_state:
    st.session_state.encounter = next(iter(ENCOUNTERS))
    st.session_state.seed = 7
    st.session_state.engine = new_engine(st.session_state.encounter, st.session_state.seed)
    st.session_state.ai = CombatAI("balanced")

engine: CombatEngine = st.session_state.engine

st.title("Palladium Tactics: Encounter Runner")
st.markdown(
    "Step an AI-vs-AI encounter turn by turn, or run a batch of encounters and compare outcomes. "
    "Uppercase letters are allies, lowercase are enemies, `^` marks a flyer."
)

menu = st.sidebar.radio("Menu", ("Encounter", "Batch"))

with st.sidebar.expander("Setup", expanded=True):
    choice = st.selectbox("Encounter", options=list(ENCOUNTERS.keys()),
                          index=list(ENCOUNTERS.keys()).index(st.session_state.encounter))
    strategy = st.selectbox("Strategy", options=list(STRATEGY_DEFAULTS.keys()), index=2)
    seed = st.number_input("Seed", min_value=0, max_value=10_000_000, value=st.session_state.seed)
    if st.button("Reset encounter"):
        st.session_state.encounter = choice
        st.session_state.seed = int(seed)
        st.session_state.engine = new_engine(choice, int(seed))
        st.session_state.ai = CombatAI(strategy)
        st.rerun()

# --- Encounter panel ---
if menu == "Encounter":
    ai: CombatAI = st.session_state.ai
    col1, col2 = st.columns([2, 1])
    with col1:
        st.subheader(f"Melee round {engine.round}")
        st.code(render_map(engine), language=None)
        b1, b2, b3 = st.columns(3)
        with b1:
            if st.button("Next turn", disabled=engine.is_combat_ended()):
                actor = engine.current_actor()
                if actor is not None:
                    ai.take_turn(engine, actor)
                st.rerun()
        with b2:
            if st.button("Next round", disabled=engine.is_combat_ended()):
                start_round = engine.round
                while not engine.is_combat_ended() and engine.round == start_round:
                    actor = engine.current_actor()
                    if actor is None:
                        break
                    ai.take_turn(engine, actor)
                st.rerun()
        with b3:
            if st.button("Run to the end", disabled=engine.is_combat_ended()):
                for _ in range(500):
                    actor = engine.current_actor()
                    if engine.is_combat_ended() or actor is None:
                        break
                    ai.take_turn(engine, actor)
                st.rerun()
        if engine.outcome is not None:
            if engine.outcome == Outcome.VICTORY:
                st.success("Victory")
            elif engine.outcome == Outcome.DEFEAT:
                st.error("Defeat")
            else:
                st.info("Draw")

    with col2:
        st.subheader("Combatants")
        for c in engine.combatants:
            st.metric(label=f"{c.name} ({c.side.value})", value=f"{c.current_hp}/{c.max_hp} HP",
                      delta=c.health_status.value, delta_color="off")
            st.progress(max(0.0, min(1.0, c.hp_ratio)))

    st.markdown("---")
    st.subheader("Combat log")
    events = engine.event_log.events[-60:]
    st.text("\n".join(f"{SEVERITY_MARK[e.severity]}[R{e.round}] {e.message}" for e in events))
    st.download_button(
        label="Download snapshot (.json)",
        data=json.dumps(engine.snapshot(), indent=2),
        file_name="encounter_snapshot.json",
        mime="application/json",
    )

# --- Batch panel ---
elif menu == "Batch":
    st.header("Batch simulation")
    num = st.number_input("Encounters", min_value=1, max_value=5000, value=100)
    enemy_strategy = st.selectbox("Enemy strategy", options=list(STRATEGY_DEFAULTS.keys()), index=2)
    if st.button("Run batch"):
        bar = st.progress(0.0)
        config = BatchConfig(
            combatants_factory=ENCOUNTERS[choice],
            map_factory=lambda _: open_field(),
            num_combats=int(num),
            strategy=strategy,
            enemy_strategy=enemy_strategy,
            seed=int(seed),
        )
        result = BatchRunner.run(config, progress_callback=lambda i, n: bar.progress(i / n))
        rates = result.outcome_rates()
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Victory", f"{rates[Outcome.VICTORY] * 100:.1f}%")
        m2.metric("Defeat", f"{rates[Outcome.DEFEAT] * 100:.1f}%")
        m3.metric("Draw", f"{rates[Outcome.DRAW] * 100:.1f}%")
        m4.metric("Avg rounds", f"{result.avg_rounds():.1f}")
        st.text(result.summary())

st.sidebar.markdown("---")
st.sidebar.caption("Seeded dice make every run reproducible.")
