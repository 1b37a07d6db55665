import secrets


class DiceRNG:
    """
    Die roller backed by the `secrets` module, so outcomes come from the
    operating system's CSPRNG rather than the seedable `random` generator.
    """

    FACES = 6

    @staticmethod
    def random_int(min_val: int, max_val: int) -> int:
        """Returns a random integer in the range [min_val, max_val] (inclusive)."""
        if min_val > max_val:
            raise ValueError("min_val must be less than or equal to max_val")
        return min_val + secrets.randbelow(max_val - min_val + 1)

    def roll_die(self) -> int:
        """One fair six-sided die."""
        return self.random_int(1, self.FACES)


rng = DiceRNG()
