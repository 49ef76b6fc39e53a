"""
skyflap Package
===============

Simulation and progression core of a side-scrolling obstacle-avoidance game:

- Flyer physics and boundary death
- Procedural obstacle field and pass-through scoring
- Timed, non-stacking power-up effects
- Collision resolution with invulnerability
- Persistent achievement engine

All tunable parameters are in game_config.yaml, achievement definitions in
achievements.yaml.
"""
