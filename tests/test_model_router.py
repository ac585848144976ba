import pytest

from src.channelchat.services.model_router import ModelRouter


def test_no_providers_available_raises():
    router = ModelRouter(env={})
    with pytest.raises(RuntimeError):
        router.select_provider("text")
    assert router.maybe_select_provider("image") is None


def test_gemini_selected_with_default_models():
    router = ModelRouter(env={"GEMINI_API_KEY": "k"})
    text = router.select_provider("text")
    image = router.select_provider("image")
    assert (text.name, text.model) == ("gemini", "gemini-2.5-flash")
    assert (image.name, image.model) == ("gemini", "gemini-2.5-flash-image")


def test_model_overrides_from_env():
    router = ModelRouter(env={"GEMINI_API_KEY": "k", "GEMINI_MODEL": "m1", "GEMINI_IMAGE_MODEL": "m2"})
    assert router.select_provider("text").model == "m1"
    assert router.select_provider("image").model == "m2"


def test_local_requires_opt_in():
    assert ModelRouter(env={}).provider_available("local") is False
    assert ModelRouter(env={"CHANNELCHAT_ENABLE_LOCAL_PROVIDER": "1"}).provider_available("local") is True
    assert ModelRouter(env={"CHANNELCHAT_MODEL_PROVIDER": "local"}).provider_available("local") is True


def test_preferred_provider_moves_to_front_for_text_only():
    env = {"GEMINI_API_KEY": "k", "CHANNELCHAT_MODEL_PROVIDER": "local"}
    router = ModelRouter(env=env)
    assert router.select_provider("text").name == "local"
    assert router.select_provider("image").name == "gemini"


def test_allowed_providers_filter():
    router = ModelRouter(env={"GEMINI_API_KEY": "k"}, allowed_providers=["local"])
    assert router.provider_available("gemini") is False
    assert router.provider_available("unknown") is False
