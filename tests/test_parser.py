import pytest

from ftpsession import FTPResponse, ProtocolError, ReplyClass, ResponseParser, classify_reply


@pytest.mark.parametrize('code, kind', [
    (120, ReplyClass.POSITIVE_PRELIMINARY),
    (226, ReplyClass.POSITIVE_COMPLETION),
    (331, ReplyClass.POSITIVE_INTERMEDIATE),
    (421, ReplyClass.TRANSIENT_NEGATIVE),
    (550, ReplyClass.PERMANENT_NEGATIVE),
    (631, ReplyClass.PROTECTED),
])
def test_classify_reply(code, kind):
    assert classify_reply(code) is kind


@pytest.mark.parametrize('code', [99, 700, 0, '220'])
def test_classify_reply_rejects_out_of_range(code):
    with pytest.raises(ProtocolError):
        classify_reply(code)


def test_parse_single_line():
    reply = ResponseParser.parse('220 Service ready')
    assert reply.code == 220
    assert reply.message == 'Service ready'
    assert reply.is_success
    assert not reply.is_error


def test_parse_code_only_line():
    reply = ResponseParser.parse('200')
    assert reply.code == 200
    assert reply.message == ''


def test_parse_multiline_keeps_raw_lines():
    lines = ['211-Features:', ' MDTM', ' SIZE', '211 End']
    reply = ResponseParser.parse(lines)
    assert reply.code == 211
    assert reply.raw_lines == lines
    assert reply.text == '211-Features:\r\n MDTM\r\n SIZE\r\n211 End\r\n'


@pytest.mark.parametrize('lines', [[], ['hello'], ['22 short'], ['999 nope']])
def test_parse_malformed(lines):
    with pytest.raises(ProtocolError):
        ResponseParser.parse(lines)


def test_error_predicates():
    assert FTPResponse(450, 'busy').is_transient_error
    assert FTPResponse(530, 'no').is_permanent_error
    assert FTPResponse(150, 'opening').is_preliminary
    assert FTPResponse(350, 'pending').is_intermediate


def test_parse_pasv():
    reply = FTPResponse(227, 'Entering Passive Mode (192,168,1,1,234,56).')
    assert ResponseParser.parse_pasv_response(reply) == ('192.168.1.1', 60024)


def test_parse_pasv_without_parentheses():
    reply = FTPResponse(227, 'Entering Passive Mode 10,0,0,5,4,1')
    assert ResponseParser.parse_pasv_response(reply) == ('10.0.0.5', 1025)


@pytest.mark.parametrize('message', ['Entering Passive Mode', '(300,1,1,1,1,1)'])
def test_parse_pasv_invalid(message):
    with pytest.raises(ProtocolError):
        ResponseParser.parse_pasv_response(FTPResponse(227, message))


def test_parse_epsv():
    reply = FTPResponse(229, 'Entering Extended Passive Mode (|||6446|)')
    assert ResponseParser.parse_epsv_response(reply) == 6446


def test_parse_epsv_custom_delimiter():
    reply = FTPResponse(229, 'ok (!!!2121!)')
    assert ResponseParser.parse_epsv_response(reply) == 2121


def test_parse_epsv_invalid():
    with pytest.raises(ProtocolError):
        ResponseParser.parse_epsv_response(FTPResponse(229, 'ok (|||0|)'))


def test_port_and_eprt_arguments():
    assert ResponseParser.format_port_command('127.0.0.1', 60024) == '127,0,0,1,234,56'
    assert ResponseParser.format_eprt_command('127.0.0.1', 21) == '|1|127.0.0.1|21|'
    assert ResponseParser.format_eprt_command('::1', 2121) == '|2|::1|2121|'


def test_parse_features():
    reply = ResponseParser.parse([
        '211-Features supported:',
        ' MDTM',
        ' MLST type*;size*;modify*;',
        ' REST STREAM',
        ' AUTH TLS',
        ' AUTH SSL',
        '211 End FEAT.',
    ])
    features = ResponseParser.parse_features(reply)
    assert features['MDTM'] == []
    assert features['MLST'] == ['type*;size*;modify*;']
    assert features['AUTH'] == ['TLS', 'SSL']
    # the header and trailer lines are not features
    assert 'FEATURES' not in features
    assert '211' not in features


def test_parse_features_ignores_non_indented_lines():
    reply = ResponseParser.parse(['211-Extensions', 'UTF8', ' SIZE', '211 END'])
    assert ResponseParser.parse_features(reply) == {'SIZE': []}


def test_parse_size_and_pwd():
    assert ResponseParser.parse_size_response(FTPResponse(213, '1234')) == 1234
    assert ResponseParser.parse_size_response(FTPResponse(550, 'nope')) is None
    assert ResponseParser.parse_pwd_response(
        FTPResponse(257, '"/home/user" is current directory')) == '/home/user'
    assert ResponseParser.parse_pwd_response(
        FTPResponse(257, '"/a ""quoted"" dir" created')) == '/a "quoted" dir'
