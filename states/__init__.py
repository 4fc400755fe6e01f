# states — конфигурация шагов мастера регистрации
from states.registration import SERVICE_PROVIDER_STEPS, WizardStep, step_index

__all__ = ["SERVICE_PROVIDER_STEPS", "WizardStep", "step_index"]
