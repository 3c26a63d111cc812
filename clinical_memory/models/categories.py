"""Problem category classifier.

Maps free-text problem names to a clinical category; the category decides
which labs, vital fields and note keywords are relevant to a problem.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

# Keywords at or below this length only match as whole words ("mi" must not
# match "anemia", "pe" must not match "peptic").
_SHORT_KEYWORD_LEN = 3


class ProblemCategory(str, Enum):
    CARDIOVASCULAR = "cardiovascular"
    RENAL = "renal"
    ENDOCRINE = "endocrine"
    PULMONARY = "pulmonary"
    GI = "gi"
    HEMATOLOGIC = "hematologic"
    NEUROLOGIC = "neurologic"
    INFECTIOUS = "infectious"
    PSYCHIATRIC = "psychiatric"
    MUSCULOSKELETAL = "musculoskeletal"
    OTHER = "other"


# Clinical priority used when grouping problems for display.
CATEGORY_DISPLAY_ORDER: tuple[ProblemCategory, ...] = (
    ProblemCategory.CARDIOVASCULAR,
    ProblemCategory.RENAL,
    ProblemCategory.ENDOCRINE,
    ProblemCategory.PULMONARY,
    ProblemCategory.GI,
    ProblemCategory.HEMATOLOGIC,
    ProblemCategory.INFECTIOUS,
    ProblemCategory.NEUROLOGIC,
    ProblemCategory.PSYCHIATRIC,
    ProblemCategory.MUSCULOSKELETAL,
    ProblemCategory.OTHER,
)


class CategoryProfile(BaseModel):
    """Keyword set and relevant-signal filters for one category."""

    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = ()
    related_labs: tuple[str, ...] = ()
    related_vitals: tuple[str, ...] = ()


DEFAULT_CATEGORY_PROFILES: Mapping[ProblemCategory, CategoryProfile] = {
    ProblemCategory.CARDIOVASCULAR: CategoryProfile(
        keywords=(
            "heart failure", "hf", "chf", "atrial fibrillation", "afib", "a-fib",
            "hypertension", "htn", "cad", "coronary", "mi", "myocardial",
            "cardiomyopathy", "valve", "arrhythmia", "angina", "pericarditis",
        ),
        related_labs=("BNP", "NT-proBNP", "Troponin", "Troponin I", "Troponin T", "CK-MB"),
        related_vitals=("systolic", "diastolic", "heart_rate", "weight"),
    ),
    ProblemCategory.RENAL: CategoryProfile(
        keywords=(
            "kidney", "ckd", "chronic kidney", "aki", "acute kidney", "nephro",
            "renal", "esrd", "dialysis", "proteinuria",
        ),
        related_labs=(
            "BUN", "Creatinine", "eGFR", "Potassium", "Phosphorus", "Calcium",
            "Uric Acid", "Cystatin C", "Albumin/Creatinine Ratio",
        ),
        related_vitals=("weight", "systolic", "diastolic"),
    ),
    ProblemCategory.ENDOCRINE: CategoryProfile(
        keywords=(
            "diabetes", "dm", "dm2", "dm1", "type 2", "type 1", "a1c", "thyroid",
            "hypothyroid", "hyperthyroid", "adrenal", "pituitary", "insulin",
        ),
        related_labs=(
            "Glucose", "Hemoglobin A1c", "HbA1c", "TSH", "Free T4", "T3",
            "Fructosamine", "C-Peptide", "Insulin",
        ),
        related_vitals=("weight",),
    ),
    ProblemCategory.PULMONARY: CategoryProfile(
        keywords=(
            "copd", "asthma", "pneumonia", "respiratory", "lung", "pulmonary",
            "bronchitis", "emphysema", "fibrosis", "sleep apnea", "osa",
        ),
        related_labs=("pO2", "pCO2", "pH", "Bicarbonate"),
        related_vitals=("spo2", "respiratory_rate"),
    ),
    ProblemCategory.GI: CategoryProfile(
        keywords=(
            "gi", "gastrointestinal", "bleed", "bleeding", "liver", "hepatic",
            "cirrhosis", "gastro", "peptic", "ulcer", "gerd", "pancreatitis",
            "colitis", "crohn", "ibd",
        ),
        related_labs=(
            "AST", "ALT", "Alkaline Phosphatase", "Bilirubin", "Albumin",
            "INR", "PT", "Ammonia", "Lipase", "Amylase",
        ),
    ),
    ProblemCategory.HEMATOLOGIC: CategoryProfile(
        keywords=(
            "anemia", "coagulation", "bleeding", "thrombocytopenia", "leukemia",
            "lymphoma", "dvt", "pe", "pulmonary embolism", "clot", "anticoagulation",
        ),
        related_labs=(
            "Hemoglobin", "Hematocrit", "WBC", "Platelets", "MCV", "MCH",
            "MCHC", "RDW", "Iron", "Ferritin", "TIBC", "Reticulocyte",
            "INR", "PT", "PTT", "D-Dimer", "Fibrinogen",
        ),
    ),
    ProblemCategory.NEUROLOGIC: CategoryProfile(
        keywords=(
            "neuropathy", "stroke", "cva", "tia", "seizure", "epilepsy",
            "dementia", "alzheimer", "parkinson", "ms", "multiple sclerosis",
        ),
    ),
    ProblemCategory.INFECTIOUS: CategoryProfile(
        keywords=(
            "infection", "sepsis", "cellulitis", "uti", "pneumonia", "abscess",
            "osteomyelitis", "endocarditis", "meningitis", "hiv", "hepatitis",
        ),
        related_labs=("WBC", "Procalcitonin", "CRP", "ESR", "Lactate", "Blood Culture"),
        related_vitals=("temperature", "heart_rate", "respiratory_rate"),
    ),
    ProblemCategory.PSYCHIATRIC: CategoryProfile(
        keywords=(
            "depression", "anxiety", "bipolar", "schizophrenia", "ptsd",
            "substance", "alcohol", "opioid", "psychiatric",
        ),
    ),
    ProblemCategory.MUSCULOSKELETAL: CategoryProfile(
        keywords=(
            "arthritis", "osteoarthritis", "rheumatoid", "gout", "fracture",
            "osteoporosis", "back pain", "joint",
        ),
        related_labs=("Uric Acid", "ESR", "CRP", "RF", "Anti-CCP", "ANA"),
    ),
}


def keyword_position(keyword: str, text: str) -> int:
    """Index of the first occurrence of a lowercase keyword in lowercase text, or -1."""
    if not keyword:
        return -1
    if len(keyword) <= _SHORT_KEYWORD_LEN:
        match = re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", text)
        return match.start() if match else -1
    return text.find(keyword)


def keyword_in_text(keyword: str, text: str) -> bool:
    return keyword_position(keyword, text) != -1


class ProblemCategoryClassifier:
    """First-match keyword classifier over an injected category table."""

    def __init__(
        self,
        profiles: Mapping[ProblemCategory, CategoryProfile] = DEFAULT_CATEGORY_PROFILES,
    ):
        self._profiles = dict(profiles)

    @property
    def categories(self) -> list[ProblemCategory]:
        return list(self._profiles)

    def profile(self, category: ProblemCategory) -> CategoryProfile:
        return self._profiles.get(category, CategoryProfile())

    def categorize(self, name: Optional[str]) -> ProblemCategory:
        """Return the first category whose keyword occurs in ``name``."""
        lowered = (name or "").lower()
        if not lowered:
            return ProblemCategory.OTHER
        for category, profile in self._profiles.items():
            if any(keyword_in_text(kw, lowered) for kw in profile.keywords):
                return category
        return ProblemCategory.OTHER

    def get_keywords(self, category: ProblemCategory) -> list[str]:
        return list(self.profile(category).keywords)

    def get_related_labs(self, category: ProblemCategory) -> list[str]:
        return list(self.profile(category).related_labs)

    def get_related_vitals(self, category: ProblemCategory) -> list[str]:
        return list(self.profile(category).related_vitals)

    def text_mentions(self, category: ProblemCategory, text: str) -> bool:
        """Whether lowercase ``text`` contains any of the category's keywords."""
        return any(keyword_in_text(kw, text) for kw in self.profile(category).keywords)
