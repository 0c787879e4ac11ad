from typing import Any
from .utils import Side


class ChannelConfig(object):
    """The per-channel parameters the channel-state layer hands us.

    All of them are agreed at channel open (or, for the feerate, by
    update_fee); this object just carries and sanity-checks them.
    """
    def __init__(self,
                 to_self_delay: int,
                 dust_limit_satoshis: int,
                 feerate_per_kw: int,
                 opener: Side = Side.local,
                 option_static_remotekey: bool = True):
        # BOLT #2: `to_self_delay` is a u16.
        if not 0 < to_self_delay <= 0xFFFF:
            raise ValueError("to_self_delay {} out of range".format(to_self_delay))
        if dust_limit_satoshis < 0:
            raise ValueError("dust_limit_satoshis {} is negative".format(dust_limit_satoshis))
        if feerate_per_kw < 0:
            raise ValueError("feerate_per_kw {} is negative".format(feerate_per_kw))
        self.to_self_delay = to_self_delay
        self.dust_limit_satoshis = dust_limit_satoshis
        self.feerate_per_kw = feerate_per_kw
        self.opener = Side(opener)
        self.option_static_remotekey = option_static_remotekey

    def with_feerate(self, feerate_per_kw: int) -> 'ChannelConfig':
        return ChannelConfig(self.to_self_delay,
                             self.dust_limit_satoshis,
                             feerate_per_kw,
                             self.opener,
                             self.option_static_remotekey)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ChannelConfig):
            return NotImplemented
        return vars(self) == vars(other)

    def __repr__(self) -> str:
        return ("ChannelConfig(to_self_delay={}, dust_limit_satoshis={}, feerate_per_kw={}, opener={}, option_static_remotekey={})"
                .format(self.to_self_delay, self.dust_limit_satoshis,
                        self.feerate_per_kw, self.opener.name,
                        self.option_static_remotekey))


def test_channel_config() -> None:
    config = ChannelConfig(144, 546, 15000)
    assert config.opener == Side.local
    assert config.option_static_remotekey

    updated = config.with_feerate(253)
    assert updated.feerate_per_kw == 253
    assert config.feerate_per_kw == 15000
    assert updated != config
    assert updated.with_feerate(15000) == config

    for bad in ((0, 546, 1), (65536, 546, 1), (144, -1, 1), (144, 546, -1)):
        try:
            ChannelConfig(*bad)
            assert False, "{} should be rejected".format(bad)
        except ValueError:
            pass
