from models import (
    AI, PLAYER, UNIT_STATS, Ability, Player, TerrainType, UnitType, create_unit,
    make_hex, opponent_of,
)


class TestUnitStats:
    def test_table_matches_unit_types(self):
        assert set(UNIT_STATS) == set(UnitType)

    def test_infantry_stats(self):
        stats = UNIT_STATS[UnitType.INFANTRY]
        assert (stats.movement_range, stats.attack_power, stats.max_lifespan, stats.cost) == (2, 2, 5, 5)
        assert stats.abilities == ()

    def test_special_abilities(self):
        assert UNIT_STATS[UnitType.TANK].abilities == (Ability.TERRAIN_BONUS,)
        assert UNIT_STATS[UnitType.ARTILLERY].abilities == (Ability.RANGED_ATTACK,)
        assert UNIT_STATS[UnitType.HELICOPTER].abilities == (Ability.RAPID_MOVEMENT,)
        assert UNIT_STATS[UnitType.MEDIC].abilities == (Ability.HEALING,)

    def test_ability_values(self):
        assert Ability.RANGED_ATTACK.value == "rangedAttack"
        assert Ability.RAPID_MOVEMENT.value == "rapidMovement"


class TestUnit:
    def test_create_unit_full_health(self):
        unit = create_unit("u1", UnitType.TANK, PLAYER, (1, -1))
        assert unit.lifespan == unit.max_lifespan == 8
        assert unit.cost == 12
        assert unit.position == (1, -1)
        assert not unit.has_moved
        assert not unit.is_engaged_in_combat

    def test_abilities_are_per_unit(self):
        a = create_unit("a", UnitType.MEDIC, PLAYER, (0, 0))
        b = create_unit("b", UnitType.MEDIC, AI, (1, 0))
        a.abilities.append(Ability.STEALTH)
        assert Ability.STEALTH not in b.abilities

    def test_only_helicopter_flies(self):
        flyers = [t for t in UnitType if create_unit("u", t, AI, (0, 0)).can_fly]
        assert flyers == [UnitType.HELICOPTER]

    def test_health_fraction(self):
        unit = create_unit("u", UnitType.INFANTRY, AI, (0, 0))
        unit.lifespan = 2
        assert unit.health_fraction == 0.4


class TestHexAndPlayer:
    def test_make_hex(self):
        hex_obj = make_hex(3, -2, TerrainType.FOREST)
        assert hex_obj.id == "hex-3--2"
        assert hex_obj.coordinates == (3, -2)
        assert not hex_obj.is_occupied
        assert hex_obj.base_health is None

    def test_points_never_negative(self):
        player = Player(id="p", type=PLAYER, points=4)
        player.update_points(-10)
        assert player.points == 0
        player.update_points(7)
        assert player.points == 7

    def test_opponent_of(self):
        assert opponent_of(PLAYER) == AI
        assert opponent_of(AI) == PLAYER
