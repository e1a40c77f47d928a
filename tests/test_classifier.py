import pytest

from conftest import FakeLLMClient
from internjobs_ingest.classifier import (
    ClassificationResult,
    JobClassifier,
    KeywordRules,
    ModelClassifier,
    build_classifier,
    parse_education_response,
    parse_time_commitment_response,
)
from internjobs_ingest.config import override_key
from internjobs_ingest.errors import ClassificationError, ModelUnavailableError
from internjobs_ingest.models import (
    Classification,
    Confidence,
    EducationCategory,
    NormalizedJob,
    TimeCategory,
)


def _job(title, description="", company="Acme", location="Austin, TX"):
    return NormalizedJob(title=title, company=company, location=location, description=description, employer_id="e")


@pytest.fixture
def rules(cfg):
    return KeywordRules.from_config(cfg)


# ---------- Stage 1 ----------

def test_advanced_only_is_college(rules):
    result = rules.education_level("Research Assistant", "PhD required")
    assert result == Classification(category=EducationCategory.COLLEGE)


def test_junior_only_is_high_school(rules):
    result = rules.education_level("Cashier", "Friendly cashier, no experience needed")
    assert result == Classification(category=EducationCategory.HIGH_SCHOOL)


def test_both_or_neither_is_inconclusive(rules):
    assert rules.education_level("Cashier", "Must be a college student at a university") is None
    assert rules.education_level("Camp Helper", "Help kids have fun") is None


def test_keywords_match_whole_words_only(rules):
    # "cashiering" is not "cashier"
    assert rules.education_level("Cashiering Lead", "Help kids have fun") is None


def test_time_single_category(rules):
    assert rules.time_commitment("Lifeguard", "Weekend shifts only").category == TimeCategory.WEEKEND
    assert rules.time_commitment("Tutor", "After school tutoring").category == TimeCategory.EVENING
    assert rules.time_commitment("Camp Helper", "Summer camp").category == TimeCategory.SUMMER


def test_time_multiple_or_none_is_inconclusive(rules):
    assert rules.time_commitment("Lifeguard", "Summer weekends") is None
    assert rules.time_commitment("Lifeguard", "Flexible hours") is None


def test_keyword_lists_are_configurable():
    custom = KeywordRules(junior=["greeter"], advanced=["robotics"], evening=[], weekend=[], summer=["july"])
    assert custom.education_level("Greeter", "").category == EducationCategory.HIGH_SCHOOL
    assert custom.education_level("Cashier", "robotics club").category == EducationCategory.COLLEGE
    assert custom.time_commitment("Greeter", "Starts in July").category == TimeCategory.SUMMER


# ---------- Stage 2 parsing ----------

@pytest.mark.parametrize("text,expected", [
    ("High School", Classification(category=EducationCategory.HIGH_SCHOOL)),
    ("  college\n", Classification(category=EducationCategory.COLLEGE)),
    ('"College (guessed by AI)"', Classification(category=EducationCategory.COLLEGE, confidence=Confidence.MODEL_GUESSED)),
    ("High School (Guessed by AI).", Classification(category=EducationCategory.HIGH_SCHOOL, confidence=Confidence.MODEL_GUESSED)),
    ("```\nCollege\n```", Classification(category=EducationCategory.COLLEGE)),
])
def test_parse_education_vocabulary(text, expected):
    assert parse_education_response(text) == expected


@pytest.mark.parametrize("text", ["Unknown", "Graduate School", "I think College", "", "None"])
def test_parse_education_out_of_vocabulary_is_null(text, capsys):
    assert parse_education_response(text, "Some Job") is None
    assert "manual review" in capsys.readouterr().out


def test_parse_time_commitment():
    assert parse_time_commitment_response("Weekend").category == TimeCategory.WEEKEND
    guessed = parse_time_commitment_response("'Summer (guessed by AI)'")
    assert guessed.category == TimeCategory.SUMMER and guessed.is_guessed
    assert parse_time_commitment_response("None") is None
    assert parse_time_commitment_response("Evenings and weekends") is None


def test_guessed_label_round_trips_to_storage_string():
    guessed = parse_education_response("College (guessed by AI)")
    assert guessed.to_legacy() == "College (guessed by AI)"
    assert Classification.from_legacy("College (guessed by AI)") == guessed
    assert Classification.from_legacy("Unknown") is None


# ---------- pre_tag / overrides ----------

def test_pre_tag_resolves_without_model(cfg):
    llm = FakeLLMClient()
    classifier = build_classifier(cfg, llm=llm)
    tagged = classifier.pre_tag(_job("Research Assistant", "PhD required. Summer program."))
    assert tagged.job.education_level.category == EducationCategory.COLLEGE
    assert tagged.job.time_commitment.category == TimeCategory.SUMMER
    assert tagged.pending == frozenset()
    assert llm.calls == []


def test_pre_tag_marks_unresolved_axes_pending(cfg):
    classifier = build_classifier(cfg, llm=FakeLLMClient())
    tagged = classifier.pre_tag(_job("Camp Helper", "Help kids have fun"))
    assert tagged.pending == frozenset({"education_level", "time_commitment"})


def test_override_beats_rules_and_can_pin_null(cfg):
    cfg["MANUAL_OVERRIDES"] = {
        override_key("Research Assistant", "Acme"): {"education_level": "High School", "time_commitment": None},
    }
    classifier = build_classifier(cfg, llm=FakeLLMClient())
    tagged = classifier.pre_tag(_job("Research Assistant", "PhD required. Summer program."))
    assert tagged.job.education_level.category == EducationCategory.HIGH_SCHOOL
    assert tagged.job.time_commitment is None
    assert tagged.pending == frozenset()


def test_location_specific_override(cfg):
    cfg["MANUAL_OVERRIDES"] = {
        override_key("Camp Helper", "Acme", "Dallas, TX"): {"education_level": "Unknown"},
    }
    classifier = build_classifier(cfg, llm=FakeLLMClient())
    dallas = classifier.pre_tag(_job("Camp Helper", "Help kids", location="Dallas, TX"))
    austin = classifier.pre_tag(_job("Camp Helper", "Help kids", location="Austin, TX"))
    assert "education_level" not in dallas.pending
    assert dallas.job.education_level is None
    assert "education_level" in austin.pending


def test_mistyped_override_value_warns(cfg, capsys):
    cfg["MANUAL_OVERRIDES"] = {
        override_key("Camp Helper", "Acme"): {"education_level": "HighSchool", "time_commitment": "Evenings"},
    }
    classifier = build_classifier(cfg, llm=FakeLLMClient())
    tagged = classifier.pre_tag(_job("Camp Helper", "Help kids"))
    out = capsys.readouterr().out
    assert tagged.job.education_level is None
    assert tagged.job.time_commitment is None
    assert "⚠️ Manual override education_level='HighSchool'" in out
    assert "⚠️ Manual override time_commitment='Evenings'" in out


def test_null_override_values_do_not_warn(cfg, capsys):
    cfg["MANUAL_OVERRIDES"] = {
        override_key("Camp Helper", "Acme"): {"education_level": "Unknown", "time_commitment": "None"},
    }
    classifier = build_classifier(cfg, llm=FakeLLMClient())
    classifier.pre_tag(_job("Camp Helper", "Help kids"))
    assert "Manual override" not in capsys.readouterr().out


def test_pre_tag_keeps_existing_classification(cfg):
    classifier = build_classifier(cfg, llm=FakeLLMClient())
    job = _job("Research Assistant", "PhD required").with_classification(
        education_level=Classification(category=EducationCategory.HIGH_SCHOOL),
    )
    tagged = classifier.pre_tag(job)
    assert tagged.job.education_level.category == EducationCategory.HIGH_SCHOOL
    assert tagged.pending == frozenset({"time_commitment"})


# ---------- Stage 2 orchestration ----------

def _answers(system, user):
    if system.startswith("You are an education"):
        return "College (guessed by AI)"
    return "Summer (guessed by AI)"


def test_model_classifier_prompts_include_job_details():
    llm = FakeLLMClient(_answers)
    model = ModelClassifier(llm)
    job = _job("Camp Helper", "Help kids have fun", company="BioLab")
    assert model.education_level(job).category == EducationCategory.COLLEGE
    system, user = llm.calls[0]
    assert "Job Title: Camp Helper" in user
    assert "Company: BioLab" in user


def test_classify_remaining_fills_pending_axes_only(cfg):
    llm = FakeLLMClient(_answers)
    classifier = build_classifier(cfg, llm=llm)
    items = [
        classifier.pre_tag(_job("Camp Helper", "Help kids have fun")),
        classifier.pre_tag(_job("Cashier", "No experience needed, weekend shifts")),
    ]
    result = classifier.classify_remaining(items)
    assert isinstance(result, ClassificationResult)
    assert result.jobs[0].education_level.to_legacy() == "College (guessed by AI)"
    assert result.jobs[0].time_commitment.to_legacy() == "Summer (guessed by AI)"
    assert result.jobs[1].education_level.to_legacy() == "High School"
    assert result.jobs[1].time_commitment.to_legacy() == "Weekend"
    assert len(llm.calls) == 2
    assert result.dead_letter == []


def test_single_job_failure_is_isolated(cfg):
    def responder(system, user):
        if "Job Title: Broken Job" in user:
            raise ClassificationError("bad request")
        return _answers(system, user)

    classifier = build_classifier(cfg, llm=FakeLLMClient(responder))
    items = [classifier.pre_tag(_job(t, "Help kids have fun")) for t in ("Camp Helper", "Broken Job", "Pool Helper")]
    result = classifier.classify_remaining(items)
    assert result.jobs[1].education_level is None
    assert result.jobs[1].time_commitment is None
    assert [j.title for j in result.dead_letter] == ["Broken Job"]
    assert result.jobs[0].education_level is not None
    assert result.jobs[2].education_level is not None


def test_unavailable_model_dead_letters_whole_chunk(cfg):
    cfg["CLASSIFY_CHUNK_SIZE"] = 2

    def responder(system, user):
        if "Job Title: Helper 2" in user:
            raise ModelUnavailableError("timed out")
        return _answers(system, user)

    classifier = build_classifier(cfg, llm=FakeLLMClient(responder))
    items = [classifier.pre_tag(_job(f"Helper {i}", "Help kids have fun")) for i in range(5)]
    result = classifier.classify_remaining(items)

    # Chunk 2 is Helper 2 and Helper 3
    assert sorted(j.title for j in result.dead_letter) == ["Helper 2", "Helper 3"]
    for i in (2, 3):
        assert result.jobs[i].education_level is None
        assert result.jobs[i].time_commitment is None
    for i in (0, 1, 4):
        assert result.jobs[i].education_level is not None
    assert [j.title for j in result.jobs] == [f"Helper {i}" for i in range(5)]


def test_chunk_delay_between_chunks(cfg, monkeypatch):
    cfg["CLASSIFY_CHUNK_SIZE"] = 2
    cfg["CLASSIFY_CHUNK_DELAY_SECONDS"] = 1.5
    sleeps = []
    monkeypatch.setattr("internjobs_ingest.classifier.time.sleep", sleeps.append)
    classifier = build_classifier(cfg, llm=FakeLLMClient(_answers))
    items = [classifier.pre_tag(_job(f"Helper {i}", "Help kids have fun")) for i in range(5)]
    classifier.classify_remaining(items)
    assert sleeps == [1.5, 1.5]


def test_model_disabled_leaves_pending_null(cfg):
    cfg["LLM_ENABLED"] = False
    classifier = build_classifier(cfg)
    items = [classifier.pre_tag(_job("Camp Helper", "Help kids have fun"))]
    result = classifier.classify_remaining(items)
    assert result.jobs[0].education_level is None
    assert result.dead_letter == []


def test_pre_tagged_jobs_pass_through_unchanged(cfg):
    classifier = JobClassifier(KeywordRules.from_config(cfg), model=None)
    item = classifier.pre_tag(_job("Research Assistant", "PhD required. Summer program."))
    result = classifier.classify_remaining([item])
    assert result.jobs == [item.job]
