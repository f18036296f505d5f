from scorebook.models.ball import WicketType, FIELDER_WICKETS
from scorebook.validators.ids import is_uuid

MAX_RUNS_PER_BALL = 6
MAX_BALL_NUMBER = 10  # room for wides / no-balls beyond the six legal balls


class DeliveryValidator:
    @staticmethod
    def validate(delivery) -> dict:
        """
        Validate the fields of a delivery before it touches the database.

        Rules:
        1. innings, over_number, ball_number, striker, non-striker and bowler present
        2. Innings is 1 or 2, over number >= 1, ball number 1-10
        3. Runs 0-6
        4. A wicket needs a wicket type; caught / run out / stumped need a fielder
        5. Player references are UUIDs
        """
        errors = []

        required = {
            "innings": delivery.innings,
            "over_number": delivery.over_number,
            "ball_number": delivery.ball_number,
            "batsman_on_strike": delivery.batsman_on_strike,
            "batsman_non_strike": delivery.batsman_non_strike,
            "bowler": delivery.bowler,
        }
        missing = [name for name, value in required.items() if value in (None, "")]
        if missing:
            errors.append(f"Missing required fields: {', '.join(missing)}")
            return {"valid": False, "errors": errors}

        if delivery.innings not in (1, 2):
            errors.append("Innings must be 1 or 2")

        if not isinstance(delivery.over_number, int) or delivery.over_number < 1:
            errors.append("Over number must be a positive integer")

        if not isinstance(delivery.ball_number, int) or not 1 <= delivery.ball_number <= MAX_BALL_NUMBER:
            errors.append(f"Ball number must be between 1 and {MAX_BALL_NUMBER}")

        runs = delivery.runs
        if isinstance(runs, bool) or not isinstance(runs, int) or not 0 <= runs <= MAX_RUNS_PER_BALL:
            errors.append(f"Runs must be a number between 0 and {MAX_RUNS_PER_BALL}")

        if delivery.is_wicket:
            if delivery.wicket_type is None:
                errors.append("Wicket type is required when is_wicket is true")
            elif not isinstance(delivery.wicket_type, WicketType):
                errors.append(f"Unknown wicket type: {delivery.wicket_type}")
            elif delivery.wicket_type in FIELDER_WICKETS and not delivery.fielder:
                errors.append(f"Fielder is required for {delivery.wicket_type.value} dismissals")

        players = {
            "batsman_on_strike": delivery.batsman_on_strike,
            "batsman_non_strike": delivery.batsman_non_strike,
            "bowler": delivery.bowler,
        }
        if delivery.is_wicket:
            players["dismissed_player"] = delivery.dismissed_player
            players["fielder"] = delivery.fielder
        for name, value in players.items():
            if value is not None and not is_uuid(value):
                errors.append(f"Invalid {name} ID format")

        if delivery.batsman_on_strike == delivery.batsman_non_strike:
            errors.append("Striker and non-striker must be different players")

        if delivery.is_wide and delivery.is_no_ball:
            errors.append("A delivery cannot be both a wide and a no-ball")

        return {"valid": len(errors) == 0, "errors": errors}
