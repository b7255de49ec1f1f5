import pytest

from testharbor.containers.ports import Port, PortBinding, parse_port_specs, to_docker_ports
from testharbor.errors import ConfigurationError


class TestPortBindingParse:
    @pytest.mark.parametrize(
        "spec,expected",
        [
            ("80", PortBinding(80, "tcp")),
            ("53/udp", PortBinding(53, "udp")),
            ("8080:80", PortBinding(80, "tcp", host_port=8080)),
            ("127.0.0.1:8080:80/tcp", PortBinding(80, "tcp", host_port=8080, host_ip="127.0.0.1")),
            ("127.0.0.1::80", PortBinding(80, "tcp", host_ip="127.0.0.1")),
            (" 5432/TCP ", PortBinding(5432, "tcp")),
        ],
    )
    def test_valid_specs(self, spec, expected):
        assert PortBinding.parse(spec) == expected

    @pytest.mark.parametrize(
        "spec",
        ["", "http", "80/icmp", "0", "70000", "8080:", ":80", "a:b:c:80", "1.2.3.4:x:80"],
    )
    def test_invalid_specs(self, spec):
        with pytest.raises(ConfigurationError):
            PortBinding.parse(spec)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            PortBinding.parse("not-a-port")


class TestDockerPorts:
    def test_random_host_port_is_none(self):
        assert to_docker_ports(parse_port_specs(["80"])) == {"80/tcp": None}

    def test_fixed_and_ip_bindings(self):
        ports = to_docker_ports(parse_port_specs(["8080:80", "127.0.0.1::53/udp"]))
        assert ports == {"80/tcp": 8080, "53/udp": ("127.0.0.1",)}

    def test_same_port_published_twice(self):
        ports = to_docker_ports(parse_port_specs(["8080:80", "127.0.0.1:9090:80"]))
        assert ports == {"80/tcp": [8080, ("127.0.0.1", 9090)]}


class TestPort:
    def test_parse_forms(self):
        assert Port.parse(80) == Port(80)
        assert Port.parse("80/udp") == Port(80, "udp")
        assert Port.parse(Port(1, "tcp")) == Port(1, "tcp")

    def test_key_defaults_to_tcp(self):
        assert Port.parse("80").key() == "80/tcp"
        assert str(Port.parse("80")) == "80"

    def test_unknown_protocol(self):
        with pytest.raises(ConfigurationError):
            Port.parse("80/foo")
