from abc import ABC, abstractmethod
from faker import Faker
import random


class BaseGenerator(ABC):
    """Demo data generator. A seed makes both Faker and `random` reproducible."""

    def __init__(self, seed: int | None = 42):
        self.fake = Faker()
        if seed is not None:
            self.fake.seed_instance(seed)
            random.seed(seed)

    @abstractmethod
    def generate_one(self):
        pass

    def generate_batch(self, count: int) -> list:
        return [self.generate_one() for _ in range(count)]

    @abstractmethod
    def save_to_db(self, records: list):
        pass
