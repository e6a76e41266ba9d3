import os
from dotenv import load_dotenv

load_dotenv()

log_level = os.getenv("POWER_RUSH_LOG_LEVEL", "INFO")
seed = os.getenv("POWER_RUSH_SEED")
random_seed = int(seed) if seed else None
preview_rounds = int(os.getenv("POWER_RUSH_PREVIEW_ROUNDS", "1000"))

if __name__ == "__main__":
    print(log_level, random_seed, preview_rounds)
